"""Conversation session.

A session owns the ordered turn history of one orchestration run and sends
each new turn to the model together with the full history and its session
configuration.

Two flavors exist and never share configuration:

- tool sessions: system instruction + tool declarations, no output modality
  constraints (deciding whether and which tools to call);
- generation sessions: fixed TEXT+IMAGE output, aspect ratio and image size,
  no tool declarations (producing the final thumbnail).
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from .config import OrchestratorConfig
from .env import DEFAULT_HISTORY_WINDOW
from .errors import ConfigurationError
from .trace import trace
from .types import Message, Part, ProviderResponse, Role, ToolSchema

logger = logging.getLogger(__name__)


@dataclass
class SessionConfig:
    """Per-session model configuration.

    Raises:
        ConfigurationError: If tool declarations and output modality
            constraints are combined.
    """
    model: str
    system_instruction: Optional[str] = None
    tools: List[ToolSchema] = field(default_factory=list)
    response_modalities: List[str] = field(default_factory=list)
    image_aspect_ratio: Optional[str] = None
    image_size: Optional[str] = None

    def __post_init__(self):
        constrained = bool(self.response_modalities or self.image_aspect_ratio or self.image_size)
        if self.tools and constrained:
            raise ConfigurationError(
                details="a session cannot declare tools and output modality constraints together"
            )

    @property
    def is_tool_session(self) -> bool:
        return bool(self.tools)


def tool_session_config(
    config: OrchestratorConfig,
    tools: Sequence[ToolSchema],
    decision: bool = False,
) -> SessionConfig:
    """Tool-capable flavor.

    Args:
        config: Orchestrator configuration.
        tools: Tool declarations for the model.
        decision: Use the lightweight decision model and instruction
            (phase 1 of reference selection).
    """
    return SessionConfig(
        model=config.decision_model if decision else config.model,
        system_instruction=config.decision_instruction if decision else config.system_instruction,
        tools=list(tools),
    )


def generation_session_config(config: OrchestratorConfig) -> SessionConfig:
    """Generation-only flavor."""
    return SessionConfig(
        model=config.model,
        system_instruction=config.system_instruction,
        response_modalities=list(config.response_modalities),
        image_aspect_ratio=config.image_aspect_ratio,
        image_size=config.image_size,
    )


class ModelProvider(Protocol):
    async def generate(self, contents: List[Message], config: SessionConfig) -> ProviderResponse:
        ...


def _is_user_authored(turn: Message) -> bool:
    """A user turn that is not the tool-result half of a function-call exchange."""
    return turn.role == Role.USER and all(p.function_response is None for p in turn.parts)


def window_history(history: Sequence[Message], window: int) -> List[Message]:
    """Cap prior history to its most recent ``window`` turns.

    Model turns without informative parts are dropped first. The result is
    then trimmed so that it starts with a user-authored turn; a leading
    function-response turn whose function-call turn fell outside the
    window is dropped with it.
    """
    if window <= 0:
        return []
    kept = [m for m in history if m.is_informative()][-window:]
    while kept and not _is_user_authored(kept[0]):
        kept.pop(0)
    return kept


class ConversationSession:
    """Ordered history plus the configuration to send it with.

    Args:
        provider: Model provider (``GeminiProvider`` or any object with an
            async ``generate(contents, config)``).
        config: Session flavor configuration.
        history: Prior turns supplied by the caller.
        history_window: Maximum number of prior turns submitted.
    """

    def __init__(
        self,
        provider: ModelProvider,
        config: SessionConfig,
        history: Optional[Sequence[Message]] = None,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ):
        self._provider = provider
        self._config = config
        self._history: List[Message] = window_history(history or [], history_window)

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def history(self) -> List[Message]:
        return list(self._history)

    async def send(self, parts: Sequence[Part], role: Role = Role.USER) -> ProviderResponse:
        """Append a turn, call the model, record its reply.

        Args:
            parts: Parts of the new turn.
            role: USER for user input, TOOL for tool results.

        Returns:
            The decoded model response.

        Raises:
            ValueError: If ``parts`` is empty.
        """
        if not parts:
            raise ValueError("cannot send an empty turn")

        self._history.append(Message(role=role, parts=list(parts)))
        trace("session", f"SEND role={role.value} parts={len(parts)} history={len(self._history)}")

        response = await self._provider.generate(list(self._history), self._config)

        model_turn = Message(role=Role.MODEL, parts=list(response.parts))
        if model_turn.is_informative():
            self._history.append(model_turn)
        else:
            logger.warning("Model returned no informative parts; reply not recorded in history")
        return response

    def attach_to_last_user_turn(self, parts: Sequence[Part]) -> bool:
        """Append parts to the most recent user-authored turn.

        Tool-result turns are skipped. Returns False if there is no user turn.
        """
        for turn in reversed(self._history):
            if turn.role == Role.USER:
                turn.parts.extend(parts)
                return True
        return False
