"""Protocol bridge between the web API and the MCP tool-provider.

``ProtocolBridge`` lazily spawns the tool-provider (``mcp_servers.supportdesk_server``)
over stdio and keeps one MCP session open for reuse. It implements the
connection state machine used by every remote call:

- DISCONNECTED: the first call starts a single connect attempt
- CONNECTING: further calls wait for that same attempt, never a second one
- CONNECTED: calls reuse the cached session

A connect attempt that does not finish within ``connect_timeout`` fails. Any
error on an established session (transport failure, per-call timeout, a
tool result flagged ``isError``) tears the session down and returns to
DISCONNECTED, so the next call spawns a fresh provider.

Remote operations never raise. They return a ``RemoteResult`` which is either
available with the provider's payload, or unavailable with a reason, in which
case the caller runs the embedded pipeline instead.
"""

import asyncio
import json
import logging
import os
import sys
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, AsyncContextManager, AsyncIterator, Awaitable, Callable, Dict, Optional, Union

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import CallToolResult, Implementation
from pydantic import AnyUrl

from . import __version__
from .config import BridgeConfig
from .exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)

FAQ_RESOURCE_URI = "file:///supportdesk/faq.json"
LOGS_RESOURCE_URI = "file:///supportdesk/logs.json"

Connector = Callable[[], AsyncContextManager[ClientSession]]

# seconds to wait for an abandoned connect attempt to unwind
ABORT_WAIT = 0.5


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class RemoteResult:
    """Outcome of a remote operation.

    ``available`` distinguishes "the provider answered" from "use the local
    fallback"; an available result may legitimately carry an empty payload.
    """

    available: bool
    data: Any = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, data: Any) -> "RemoteResult":
        return cls(available=True, data=data)

    @classmethod
    def unavailable(cls, reason: str) -> "RemoteResult":
        return cls(available=False, reason=reason)


@dataclass
class _Connection:
    session: ClientSession
    owner: "asyncio.Task[None]"
    closing: asyncio.Event


def _tool_payload(result: CallToolResult) -> Any:
    structured = getattr(result, "structuredContent", None)
    if structured is not None:
        # FastMCP wraps outputs whose schema is not an object model as {"result": ...}
        if isinstance(structured, dict) and set(structured) == {"result"}:
            return structured["result"]
        return structured
    for item in result.content:
        text = getattr(item, "text", None)
        if text:
            return json.loads(text)
    raise ValueError("tool returned no content")


def _error_text(result: CallToolResult) -> str:
    texts = [getattr(item, "text", "") for item in result.content]
    return " ".join(t for t in texts if t) or "unknown error"


class ProtocolBridge:
    """Connection manager for the MCP tool-provider.

    The session is opened and closed by a dedicated owner task, so the stdio
    transport and session contexts are always exited by the task that
    entered them.

    Attributes:
        config: Timeouts and the provider module to spawn.
        data_dir: Data directory passed to the provider, or None to let the
                  provider use its own default.
        connect_attempts: Number of connect attempts started so far.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        connector: Optional[Connector] = None,
        data_dir: Optional[Union[str, Path]] = None,
    ):
        self.config = config or BridgeConfig()
        self.data_dir = data_dir
        self._connector = connector or self._spawn_provider
        self._connection: Optional[_Connection] = None
        self._connecting: Optional["asyncio.Future[ClientSession]"] = None
        self.connect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        if self._connection is not None:
            return ConnectionState.CONNECTED
        if self._connecting is not None:
            return ConnectionState.CONNECTING
        return ConnectionState.DISCONNECTED

    @asynccontextmanager
    async def _spawn_provider(self) -> AsyncIterator[ClientSession]:
        """Start the tool-provider as a subprocess and open an MCP session on it."""
        project_root = Path(__file__).resolve().parent.parent
        python_path = os.pathsep.join(
            p for p in (str(project_root), os.environ.get("PYTHONPATH", "")) if p
        )
        env = {
            "PYTHONUNBUFFERED": "1",
            "PYTHONPATH": python_path,
            "MCP_LOG_LEVEL": self.config.log_level,
        }
        if self.data_dir is not None:
            env["SUPPORTDESK_DATA_DIR"] = str(Path(self.data_dir).resolve())

        server_params = StdioServerParameters(
            command=sys.executable,
            args=["-m", self.config.server_module],
            env=env,
        )
        async with AsyncExitStack() as stack:
            read, write = await stack.enter_async_context(stdio_client(server_params))
            session = await stack.enter_async_context(
                ClientSession(
                    read,
                    write,
                    client_info=Implementation(name="supportdesk-web-client", version=__version__),
                )
            )
            await session.initialize()
            yield session

    async def _hold_connection(
        self, ready: "asyncio.Future[ClientSession]", closing: asyncio.Event
    ) -> None:
        try:
            async with self._connector() as session:
                if ready.done():
                    # connect attempt already gave up on us
                    return
                ready.set_result(session)
                await closing.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.warning(f"MCP connection closed with error: {e}")
        finally:
            if not ready.done():
                ready.set_exception(UpstreamUnavailable("MCP connection closed before it was ready"))

    async def _connect(self) -> ClientSession:
        self.connect_attempts += 1
        ready: "asyncio.Future[ClientSession]" = asyncio.get_running_loop().create_future()
        closing = asyncio.Event()
        owner = asyncio.ensure_future(self._hold_connection(ready, closing))
        try:
            session = await asyncio.wait_for(
                asyncio.shield(ready), timeout=self.config.connect_timeout
            )
        except asyncio.TimeoutError as e:
            ready.cancel()
            await self._abort(owner)
            raise UpstreamUnavailable(
                f"MCP connect timeout after {self.config.connect_timeout:g}s"
            ) from e
        except asyncio.CancelledError:
            ready.cancel()
            owner.cancel()
            raise
        except Exception as e:
            await self._abort(owner)
            raise UpstreamUnavailable(f"MCP connect failed: {e}") from e
        finally:
            if self._connecting is asyncio.current_task():
                self._connecting = None

        self._connection = _Connection(session=session, owner=owner, closing=closing)
        logger.info("Connected to MCP tool-provider")
        return session

    async def _abort(self, owner: "asyncio.Task[None]") -> None:
        owner.cancel()
        await asyncio.wait({owner}, timeout=ABORT_WAIT)

    async def _teardown(self, connection: _Connection) -> None:
        connection.closing.set()
        _, pending = await asyncio.wait({connection.owner}, timeout=self.config.connect_timeout)
        if pending:
            connection.owner.cancel()

    async def _get_session(self) -> ClientSession:
        if self._connection is not None:
            return self._connection.session
        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._connect())
        # shield: a cancelled caller must not cancel the attempt other callers share
        return await asyncio.shield(self._connecting)

    async def _invalidate(self, session: ClientSession) -> None:
        connection = self._connection
        if connection is None or connection.session is not session:
            return
        self._connection = None
        await self._teardown(connection)

    async def _request(
        self, label: str, send: Callable[[ClientSession], Awaitable[Any]]
    ) -> RemoteResult:
        try:
            session = await self._get_session()
        except Exception as e:
            logger.warning(f"MCP unavailable for {label}: {e}")
            return RemoteResult.unavailable(str(e))

        try:
            data = await asyncio.wait_for(send(session), timeout=self.config.call_timeout)
        except asyncio.TimeoutError:
            reason = f"{label} timed out after {self.config.call_timeout:g}s"
        except Exception as e:
            reason = f"{label} failed: {e}"
        else:
            return RemoteResult.ok(data)

        logger.warning(f"MCP call error, resetting connection: {reason}")
        await self._invalidate(session)
        return RemoteResult.unavailable(reason)

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> RemoteResult:
        """Invoke a provider tool by name.

        Args:
            name: Tool name (e.g. ``"ask_support"``).
            arguments: Tool arguments.

        Returns:
            RemoteResult: The tool's structured payload, or unavailable.
        """

        async def send(session: ClientSession) -> Any:
            result = await session.call_tool(name, arguments or {})
            if result.isError:
                raise UpstreamUnavailable(f"provider error: {_error_text(result)}")
            return _tool_payload(result)

        return await self._request(name, send)

    async def read_resource(self, uri: str) -> RemoteResult:
        """Read a JSON resource exposed by the provider."""

        async def send(session: ClientSession) -> Any:
            result = await session.read_resource(AnyUrl(uri))
            for item in result.contents:
                text = getattr(item, "text", None)
                if text is not None:
                    return json.loads(text)
            raise ValueError(f"resource {uri} has no text content")

        return await self._request(uri, send)

    async def ask_support(self, question: str, top_k: int = 3) -> RemoteResult:
        return await self.call_tool("ask_support", {"question": question.strip(), "top_k": top_k})

    async def classify_intent(self, text: str) -> RemoteResult:
        return await self.call_tool("classify_intent", {"text": text.strip()})

    async def search_faq(self, query: str, top_k: int = 5) -> RemoteResult:
        return await self.call_tool("search_faq", {"query": query.strip(), "top_k": top_k})

    async def search_similar(self, query: str, top_k: int = 10) -> RemoteResult:
        return await self.call_tool("search_similar", {"query": query.strip(), "top_k": top_k})

    async def get_metrics(self) -> RemoteResult:
        return await self.call_tool("get_metrics", {})

    async def is_available(self) -> bool:
        """Check whether the provider can be reached, connecting if needed."""
        try:
            await self._get_session()
            return True
        except Exception:
            return False

    async def close(self) -> None:
        """Stop the provider and forget any cached or pending connection."""
        if self._connecting is not None:
            self._connecting.cancel()
            self._connecting = None
        connection = self._connection
        self._connection = None
        if connection is not None:
            await self._teardown(connection)
