"""Gemini model provider.

Wraps an explicitly constructed ``google.genai`` client. The provider is
stateless with respect to conversation history: the session passes the full
turn list to ``generate()`` on every call and owns the history itself.

There is no module-level client. Build one provider per process (or per
request) and pass it to the sessions that use it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ._lazy import get_genai, get_types
from .converters import history_to_sdk, response_from_sdk, tool_schemas_to_sdk_tool
from .errors import ConfigurationError
from .trace import trace
from .types import Message, ProviderResponse

if TYPE_CHECKING:
    from .config import OrchestratorConfig
    from .session import SessionConfig

logger = logging.getLogger(__name__)


def build_generate_config(config: 'SessionConfig') -> Any:
    """Build a ``types.GenerateContentConfig`` from a session configuration.

    Automatic function calling is always disabled: tool calls are dispatched
    by the orchestrator, never by the SDK.
    """
    types = get_types()
    kwargs: Dict[str, Any] = {
        "system_instruction": config.system_instruction or None,
        "automatic_function_calling": types.AutomaticFunctionCallingConfig(disable=True),
    }
    sdk_tool = tool_schemas_to_sdk_tool(config.tools)
    if sdk_tool is not None:
        kwargs["tools"] = [sdk_tool]
    if config.response_modalities:
        kwargs["response_modalities"] = list(config.response_modalities)
    if config.image_aspect_ratio or config.image_size:
        kwargs["image_config"] = types.ImageConfig(
            aspect_ratio=config.image_aspect_ratio,
            image_size=config.image_size,
        )
    return types.GenerateContentConfig(**kwargs)


class GeminiProvider:
    """Async Gemini provider (AI Studio, API key auth).

    Args:
        api_key: Gemini API key.
        client: Pre-built ``genai.Client``; one is created from ``api_key``
            when omitted.

    Raises:
        ConfigurationError: If neither a client nor an API key is given.
    """

    def __init__(self, api_key: Optional[str] = None, client: Any = None):
        if client is None:
            if not api_key:
                raise ConfigurationError(details="GEMINI_API_KEY is not set")
            client = get_genai().Client(api_key=api_key)
        self._client = client

    @property
    def client(self) -> Any:
        return self._client

    async def generate(self, contents: List[Message], config: 'SessionConfig') -> ProviderResponse:
        """Send the full turn list and decode the first candidate.

        Args:
            contents: History followed by the newest turn. The provider does
                not append anything.
            config: Session configuration (model, instruction, tools,
                modalities, image policy).

        Returns:
            The decoded ProviderResponse.

        Raises:
            ModelContentBlocked: If the response was blocked.
            UnrecognizedPartError: If the response has an unknown part shape.
            Exception: SDK/transport errors propagate unclassified; they are
                classified once by the orchestrator.
        """
        trace("provider", f"GENERATE model={config.model} turns={len(contents)} "
                          f"tools={len(config.tools)} modalities={config.response_modalities}")
        response = await self._client.aio.models.generate_content(
            model=config.model,
            contents=history_to_sdk(contents),
            config=build_generate_config(config),
        )
        decoded = response_from_sdk(response)
        trace("provider", f"RESPONSE parts={[p.kind.value for p in decoded.parts]} "
                          f"finish={decoded.finish_reason.value} "
                          f"tokens={decoded.usage.total_tokens}")
        return decoded


def create_provider(config: 'OrchestratorConfig') -> GeminiProvider:
    """Build a provider from the orchestrator configuration."""
    return GeminiProvider(api_key=config.api_key)


__all__ = ['GeminiProvider', 'build_generate_config', 'create_provider']
