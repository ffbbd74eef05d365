"""Orchestrator configuration.

Usage:
    from thumbcraft.config import OrchestratorConfig

    config = OrchestratorConfig.from_env(env_file=".env")
    config.validate()
"""

from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from . import env
from .errors import ConfigurationError


MODES = ("iterative", "selection")
TRANSPORTS = ("sse", "streamable-http")


@dataclass
class OrchestratorConfig:
    """Settings for the model, the tool server and the loop.

    Attributes:
        api_key: Gemini API key (required).
        model: Model used by the tool loop and by image generation.
        decision_model: Lightweight model deciding on reference lookups
            (two-phase selection mode).
        system_instruction: Steering text for generation.
        decision_instruction: Steering text for the decision session.
        mcp_server_url: Tool server endpoint. Tools are unavailable if unset.
        mcp_auth_token: Bearer credential for the tool server.
        mcp_transport: "sse" or "streamable-http".
        tool_timeout: Per-attempt tool call timeout in seconds.
        tool_max_attempts: Attempts per tool call.
        tool_retry_base_delay: Backoff base in seconds (doubles per retry).
        max_tool_rounds: Tool-dispatch rounds allowed per run.
        history_window: Prior turns submitted to the model.
        mode: "iterative" (single-session tool loop) or "selection"
            (two-phase human-in-the-loop reference selection).
        response_modalities: Output kinds requested for generation.
        image_aspect_ratio: Aspect ratio of generated images.
        image_size: Size class of generated images.
    """
    api_key: Optional[str] = field(default_factory=env.resolve_api_key)
    model: str = field(default_factory=env.resolve_model)
    decision_model: str = field(default_factory=env.resolve_decision_model)
    system_instruction: str = field(default_factory=env.resolve_system_instruction)
    decision_instruction: str = field(default_factory=env.resolve_decision_instruction)
    mcp_server_url: Optional[str] = field(default_factory=env.resolve_mcp_server_url)
    mcp_auth_token: Optional[str] = field(default_factory=env.resolve_mcp_auth_token)
    mcp_transport: str = field(default_factory=env.resolve_mcp_transport)
    tool_timeout: float = field(default_factory=env.resolve_mcp_timeout)
    tool_max_attempts: int = field(default_factory=env.resolve_mcp_max_retries)
    tool_retry_base_delay: float = field(default_factory=env.resolve_mcp_retry_base_delay)
    max_tool_rounds: int = field(default_factory=env.resolve_max_tool_rounds)
    history_window: int = field(default_factory=env.resolve_history_window)
    mode: str = field(default_factory=env.resolve_mode)
    response_modalities: List[str] = field(default_factory=lambda: ["TEXT", "IMAGE"])
    image_aspect_ratio: str = field(default_factory=env.resolve_image_aspect_ratio)
    image_size: str = field(default_factory=env.resolve_image_size)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> 'OrchestratorConfig':
        """Load a .env file (if any) and build the config from the environment.

        Variables already present in the process environment are not
        overridden by the file.

        Args:
            env_file: Path to a .env file. None searches the default locations.
            **overrides: Explicit field values that take precedence.
        """
        load_dotenv(env_file)
        return cls(**overrides)

    @property
    def tool_server_configured(self) -> bool:
        """Both an endpoint and a bearer credential are required."""
        return bool(self.mcp_server_url and self.mcp_auth_token)

    def validate(self) -> None:
        """Check the configuration before any remote call.

        Raises:
            ConfigurationError: On a missing credential or invalid setting.
        """
        if not self.api_key:
            raise ConfigurationError(details="GEMINI_API_KEY is not set")
        if self.mode not in MODES:
            raise ConfigurationError(details=f"unknown mode {self.mode!r}, expected one of {MODES}")
        if self.mcp_transport not in TRANSPORTS:
            raise ConfigurationError(
                details=f"unknown MCP transport {self.mcp_transport!r}, expected one of {TRANSPORTS}"
            )
        if self.max_tool_rounds < 1:
            raise ConfigurationError(details="max_tool_rounds must be at least 1")
        if self.tool_max_attempts < 1:
            raise ConfigurationError(details="tool_max_attempts must be at least 1")
        if self.tool_timeout <= 0:
            raise ConfigurationError(details="tool_timeout must be positive")
        if self.history_window < 0:
            raise ConfigurationError(details="history_window must not be negative")
