"""MCP tool client.

Executes one named tool call against a remote MCP server. Every attempt
opens its own transport and session, so a stale server-side session never
poisons later calls; both are closed by ``async with`` on every path.

Usage:
    client = McpToolClient("https://tools.example.com/sse", token)
    result = await client.execute("search_card_images", {"query": "Blue-Eyes"})
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable

import httpx
from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation

from .config import OrchestratorConfig
from .errors import ToolError
from .retry_utils import RetryCallback, RetryConfig, with_retry
from .trace import trace
from .types import ToolSchema

logger = logging.getLogger(__name__)

# Client info sent to MCP servers during initialization
_CLIENT_INFO = Implementation(name="thumbcraft", version="0.1.0")


@runtime_checkable
class ToolClient(Protocol):
    """Anything that can execute a named tool call."""

    async def execute(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Run the tool and return its result mapping.

        Raises:
            ToolError: When the call failed after all attempts.
        """
        ...


class ToolResultError(ToolError):
    """The server answered, but flagged the result as an error (``isError``).

    Not retried: the server already made its decision.
    """


class BearerAuth(httpx.Auth):
    """Attach ``Authorization: Bearer <token>`` to every transport request."""

    def __init__(self, token: str):
        self._token = token

    def auth_flow(self, request: httpx.Request):
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


def _root_cause(exc: BaseException) -> BaseException:
    """Unwrap single-member exception groups raised by transport task groups."""
    while True:
        inner = getattr(exc, "exceptions", None)
        if not inner or len(inner) != 1:
            return exc
        exc = inner[0]


def _describe(exc: BaseException) -> str:
    root = _root_cause(exc)
    text = str(root)
    return f"{type(root).__name__}: {text}" if text else type(root).__name__


def _error_text(payload: Dict[str, Any]) -> str:
    texts = [
        item.get("text", "")
        for item in payload.get("content", [])
        if isinstance(item, dict) and item.get("type") == "text"
    ]
    return "\n".join(t for t in texts if t) or "tool reported an error"


class McpToolClient:
    """Retrying MCP tool client.

    Args:
        server_url: Endpoint of the MCP server.
        auth_token: Bearer credential.
        transport: "sse" (default) or "streamable-http".
        timeout: Hard limit for one attempt (connect, initialize and call), in seconds.
        retry_config: Attempts and backoff; defaults to 3 attempts, 1s/2s waits.
        on_retry: Optional retry notification callback.
    """

    def __init__(
        self,
        server_url: str,
        auth_token: str,
        transport: str = "sse",
        timeout: float = 30.0,
        retry_config: Optional[RetryConfig] = None,
        on_retry: Optional[RetryCallback] = None,
    ):
        self.server_url = server_url
        self.transport = transport
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self._auth = BearerAuth(auth_token)
        self._on_retry = on_retry

    @classmethod
    def from_config(cls, config: OrchestratorConfig) -> Optional['McpToolClient']:
        """Build a client, or None when no tool server is configured."""
        if not config.tool_server_configured:
            logger.warning(
                "MCP_SERVER_URL or MCP_AUTH_TOKEN is not set; MCP tools are disabled"
            )
            return None
        return cls(
            server_url=config.mcp_server_url,
            auth_token=config.mcp_auth_token,
            transport=config.mcp_transport,
            timeout=config.tool_timeout,
            retry_config=RetryConfig(
                max_attempts=config.tool_max_attempts,
                base_delay=config.tool_retry_base_delay,
            ),
        )

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[ClientSession]:
        """Open a fresh transport + initialized session for one attempt."""
        if self.transport == "streamable-http":
            async with streamablehttp_client(self.server_url, auth=self._auth) as (read, write, _):
                async with ClientSession(read, write, client_info=_CLIENT_INFO) as session:
                    await session.initialize()
                    yield session
        else:
            async with sse_client(self.server_url, auth=self._auth) as (read, write):
                async with ClientSession(read, write, client_info=_CLIENT_INFO) as session:
                    await session.initialize()
                    yield session

    async def _call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> Any:
        async with self._connect() as session:
            trace("mcp", f"CONNECTED tool={tool_name}")
            return await session.call_tool(tool_name, arguments)

    async def _execute_once(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        # One deadline covers connect, initialize and the call itself
        try:
            result = await asyncio.wait_for(
                self._call_tool(tool_name, arguments),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutError(
                f'tool "{tool_name}" timed out after {self.timeout:g}s'
            ) from exc

        payload = result.model_dump(mode="json", by_alias=True, exclude_none=True)
        if result.isError:
            raise ToolResultError(tool_name, _error_text(payload))
        trace("mcp", f"OK tool={tool_name} items={len(payload.get('content', []))}")
        return payload

    async def execute(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Run a tool with retries.

        Raises:
            ToolError: Naming the tool and the last underlying cause.
        """
        attempts = 0

        async def attempt() -> Dict[str, Any]:
            nonlocal attempts
            attempts += 1
            return await self._execute_once(tool_name, arguments or {})

        try:
            result, _stats = await with_retry(
                attempt,
                config=self.retry_config,
                context=f'MCP tool "{tool_name}"',
                should_retry=lambda exc: not isinstance(_root_cause(exc), ToolError),
                on_retry=self._on_retry,
            )
        except Exception as exc:
            root = _root_cause(exc)
            if isinstance(root, ToolError):
                raise root
            trace("mcp", f"FAILED tool={tool_name} attempts={attempts}", include_traceback=True)
            raise ToolError(tool_name, _describe(exc), attempts=attempts, cause=root) from exc

        logger.info('MCP tool "%s" succeeded after %d attempt(s)', tool_name, attempts)
        return result

    async def _list_tools(self) -> Any:
        async with self._connect() as session:
            return await session.list_tools()

    async def list_tools(self) -> List[ToolSchema]:
        """Discover the server's tools as declarations for the model."""
        result = await asyncio.wait_for(self._list_tools(), timeout=self.timeout)
        return [
            ToolSchema(
                name=tool.name,
                description=tool.description or "",
                parameters=dict(tool.inputSchema or {}),
            )
            for tool in result.tools
        ]


__all__ = ['BearerAuth', 'McpToolClient', 'ToolClient', 'ToolResultError']
