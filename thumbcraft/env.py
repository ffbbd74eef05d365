"""Environment variable resolution.

Each setting has one resolver so precedence rules live in one place.
Explicit values passed to ``OrchestratorConfig`` always win over these.
"""

import os
from typing import Optional


DEFAULT_MODEL = "gemini-3-pro-image-preview"
DEFAULT_DECISION_MODEL = "gemini-2.5-flash"

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are an assistant that creates thumbnails for Yu-Gi-Oh! OCG match videos. "
    "Generate a 16:9 thumbnail image that follows the user's request."
)

DEFAULT_DECISION_INSTRUCTION = (
    "You decide whether reference images are needed before a thumbnail is generated. "
    "When the request names specific cards, characters or artwork, call the available "
    "tools to fetch reference images for them. Otherwise answer without calling tools."
)

DEFAULT_MCP_TRANSPORT = "sse"
DEFAULT_MCP_TIMEOUT = 30.0
DEFAULT_MCP_MAX_RETRIES = 3
DEFAULT_MCP_RETRY_BASE_DELAY = 1.0

DEFAULT_MAX_TOOL_ROUNDS = 10
DEFAULT_HISTORY_WINDOW = 20
DEFAULT_MODE = "iterative"

DEFAULT_IMAGE_ASPECT_RATIO = "16:9"
DEFAULT_IMAGE_SIZE = "1K"


def _get(name: str) -> Optional[str]:
    """Read an env var, treating empty strings as unset."""
    value = os.environ.get(name)
    return value if value else None


def _get_int(name: str, default: int) -> int:
    value = _get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    value = _get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def resolve_api_key() -> Optional[str]:
    """Resolve the Gemini API key.

    Checks GEMINI_API_KEY, then GOOGLE_API_KEY.
    """
    return _get("GEMINI_API_KEY") or _get("GOOGLE_API_KEY")


def resolve_model() -> str:
    return _get("GEMINI_MODEL") or DEFAULT_MODEL


def resolve_decision_model() -> str:
    return _get("GEMINI_DECISION_MODEL") or DEFAULT_DECISION_MODEL


def resolve_system_instruction() -> str:
    return _get("THUMBCRAFT_SYSTEM_INSTRUCTION") or DEFAULT_SYSTEM_INSTRUCTION


def resolve_decision_instruction() -> str:
    return _get("THUMBCRAFT_DECISION_INSTRUCTION") or DEFAULT_DECISION_INSTRUCTION


def resolve_mcp_server_url() -> Optional[str]:
    return _get("MCP_SERVER_URL")


def resolve_mcp_auth_token() -> Optional[str]:
    """Resolve the bearer credential for the tool server.

    Checks MCP_AUTH_TOKEN, then AUTH_PASSWORD (the shared password the
    tool server is commonly deployed with).
    """
    return _get("MCP_AUTH_TOKEN") or _get("AUTH_PASSWORD")


def resolve_mcp_transport() -> str:
    return (_get("MCP_TRANSPORT") or DEFAULT_MCP_TRANSPORT).lower()


def resolve_mcp_timeout() -> float:
    return _get_float("MCP_TIMEOUT", DEFAULT_MCP_TIMEOUT)


def resolve_mcp_max_retries() -> int:
    return _get_int("MCP_MAX_RETRIES", DEFAULT_MCP_MAX_RETRIES)


def resolve_mcp_retry_base_delay() -> float:
    return _get_float("MCP_RETRY_BASE_DELAY", DEFAULT_MCP_RETRY_BASE_DELAY)


def resolve_max_tool_rounds() -> int:
    return _get_int("THUMBCRAFT_MAX_TOOL_ROUNDS", DEFAULT_MAX_TOOL_ROUNDS)


def resolve_history_window() -> int:
    return _get_int("THUMBCRAFT_HISTORY_WINDOW", DEFAULT_HISTORY_WINDOW)


def resolve_mode() -> str:
    return (_get("THUMBCRAFT_MODE") or DEFAULT_MODE).lower()


def resolve_image_aspect_ratio() -> str:
    return _get("THUMBCRAFT_IMAGE_ASPECT_RATIO") or DEFAULT_IMAGE_ASPECT_RATIO


def resolve_image_size() -> str:
    return _get("THUMBCRAFT_IMAGE_SIZE") or DEFAULT_IMAGE_SIZE
