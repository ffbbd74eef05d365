"""Pytest fixtures shared by the thumbcraft tests."""

from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest

from thumbcraft.config import OrchestratorConfig
from thumbcraft.types import FunctionCall, Part, ProviderResponse, ToolSchema


_ENV_VARS = (
    "GEMINI_API_KEY", "GOOGLE_API_KEY", "GEMINI_MODEL", "GEMINI_DECISION_MODEL",
    "MCP_SERVER_URL", "MCP_AUTH_TOKEN", "AUTH_PASSWORD", "MCP_TRANSPORT",
    "MCP_TIMEOUT", "MCP_MAX_RETRIES", "MCP_RETRY_BASE_DELAY",
    "THUMBCRAFT_MAX_TOOL_ROUNDS", "THUMBCRAFT_HISTORY_WINDOW", "THUMBCRAFT_MODE",
    "THUMBCRAFT_SYSTEM_INSTRUCTION", "THUMBCRAFT_DECISION_INSTRUCTION",
    "THUMBCRAFT_IMAGE_ASPECT_RATIO", "THUMBCRAFT_IMAGE_SIZE",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Run every test without ambient configuration and without trace files."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("THUMBCRAFT_TRACE_LOG", "")


@pytest.fixture
def config():
    return OrchestratorConfig(
        api_key="test-key",
        model="image-model",
        decision_model="decision-model",
        system_instruction="Make thumbnails.",
        decision_instruction="Decide on references.",
        mcp_server_url=None,
        mcp_auth_token=None,
        mcp_transport="sse",
        tool_timeout=5.0,
        tool_max_attempts=3,
        tool_retry_base_delay=0.0,
        max_tool_rounds=10,
        history_window=20,
        mode="iterative",
        image_aspect_ratio="16:9",
        image_size="1K",
    )


@pytest.fixture
def tools():
    return [
        ToolSchema(
            name="search_card_images",
            description="Search card artwork",
            parameters={"type": "object", "properties": {"query": {"type": "string"}}},
        ),
    ]


def text_response(*texts: str) -> ProviderResponse:
    return ProviderResponse(parts=[Part.from_text(t) for t in texts])


def call_response(*calls: Any) -> ProviderResponse:
    """Response requesting tools; each call is a name or (name, args)."""
    parts = []
    for index, call in enumerate(calls):
        name, args = (call, {}) if isinstance(call, str) else call
        parts.append(Part.from_function_call(FunctionCall(name=name, args=args, index=index)))
    return ProviderResponse(parts=parts)


def image_result(*payloads: str, mime_type: str = "image/png") -> Dict[str, Any]:
    """MCP result mapping with one image item per base64 payload."""
    return {
        "content": [{"type": "image", "data": p, "mimeType": mime_type} for p in payloads],
        "isError": False,
    }


@pytest.fixture
def responses():
    """Builders for fake model responses and tool results."""
    class Builders:
        text = staticmethod(text_response)
        calls = staticmethod(call_response)
        images = staticmethod(image_result)
    return Builders


@pytest.fixture
def make_provider():
    """Build a fake provider whose ``generate`` yields the given responses."""
    def _make(*items):
        provider = AsyncMock()
        if len(items) == 1 and callable(items[0]) and not isinstance(items[0], ProviderResponse):
            provider.generate = AsyncMock(side_effect=items[0])
        else:
            provider.generate = AsyncMock(side_effect=list(items))
        return provider
    return _make
