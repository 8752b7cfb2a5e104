"""
Transport layer for MCP tool communication.

Implements StdioTransport: JSON-RPC over stdin/stdout pipes
to a subprocess. This is MCP's native local transport.

Responses are matched to requests by id, so several requests can be in
flight on the same pipe. Everything runs on one event loop per connection;
the pending table and the line buffer are never touched from another thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ..errors import ProtocolError, RequestTimeoutError, TransportError
from .framing import LineFramer

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_KILL_GRACE = 5.0
READ_CHUNK_SIZE = 64 * 1024


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request. A request without an id is a notification."""
    method: str
    params: dict[str, Any] = field(default_factory=dict)
    id: int | str | None = None

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": "2.0"}
        if self.id is not None:
            message["id"] = self.id
        message["method"] = self.method
        message["params"] = self.params
        return message

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: dict | None = None

    @classmethod
    def from_dict(cls, parsed: dict[str, Any]) -> JsonRpcResponse:
        return cls(
            id=parsed.get("id"),
            result=parsed.get("result"),
            error=parsed.get("error"),
        )

    @classmethod
    def from_json(cls, data: str) -> JsonRpcResponse:
        return cls.from_dict(json.loads(data))

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class PendingRequest:
    """An outstanding request waiting for its response or its deadline."""
    id: int
    method: str
    future: asyncio.Future
    timeout: float
    created_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None


class RequestMultiplexer:
    """
    Correlates JSON-RPC requests and responses over a single line stream.

    Each request gets the next integer id and its own deadline timer. A
    pending entry is settled exactly once: by its response, by its timer, or
    by fail_all(). Whatever arrives later for the same id is ignored.
    """

    def __init__(
        self,
        writer: Callable[[str], Awaitable[None]],
        default_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_pending: int | None = None,
        name: str = "mcp",
    ):
        self._writer = writer
        self.default_timeout = default_timeout
        self.max_pending = max_pending
        self.name = name
        self.framer = LineFramer()
        self._pending: dict[int, PendingRequest] = {}
        self._request_id = 0

    @property
    def pending_ids(self) -> list[int]:
        return list(self._pending.keys())

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and wait for its result."""
        if self.max_pending is not None and len(self._pending) >= self.max_pending:
            raise TransportError(
                f"[{self.name}] too many pending requests ({len(self._pending)})"
            )

        loop = asyncio.get_running_loop()
        deadline = self.default_timeout if timeout is None else timeout
        request = JsonRpcRequest(method=method, params=params or {}, id=self.next_id())

        pending = PendingRequest(
            id=request.id,
            method=method,
            future=loop.create_future(),
            timeout=deadline,
        )
        pending.timer = loop.call_later(deadline, self._expire, request.id)
        self._pending[request.id] = pending

        logger.debug(f"[{self.name}] -> {method} (id={request.id})")
        try:
            await self._writer(request.to_json() + "\n")
        except TransportError:
            self._discard(request.id)
            raise
        except (OSError, RuntimeError) as e:
            self._discard(request.id)
            raise TransportError(f"[{self.name}] failed to write {method}: {e}") from e

        return await pending.future

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification. No response is expected."""
        notification = JsonRpcRequest(method=method, params=params or {})
        logger.debug(f"[{self.name}] -> {method} (notification)")
        try:
            await self._writer(notification.to_json() + "\n")
        except TransportError:
            raise
        except (OSError, RuntimeError) as e:
            raise TransportError(f"[{self.name}] failed to write {method}: {e}") from e

    def feed(self, chunk: str | bytes) -> None:
        """Frame raw output from the server and dispatch complete messages."""
        for message in self.framer.messages(chunk):
            self.dispatch(message)

    def dispatch(self, message: dict[str, Any]) -> None:
        if "method" in message:
            # Server-initiated request or notification; its id is in the server's id space
            logger.debug(f"[{self.name}] ignoring server message: {message['method']}")
            return

        response = JsonRpcResponse.from_dict(message)
        if response.id is None:
            logger.debug(f"[{self.name}] ignoring message without id")
            return
        if isinstance(response.id, bool) or not isinstance(response.id, (int, str)):
            logger.debug(f"[{self.name}] ignoring message with invalid id {response.id!r}")
            return

        pending = self._pending.pop(response.id, None)
        if pending is None:
            logger.debug(f"[{self.name}] ignoring response for unknown id {response.id!r}")
            return

        if pending.timer:
            pending.timer.cancel()
        if pending.future.done():
            return

        if response.is_error:
            pending.future.set_exception(ProtocolError.from_error(response.error))
        else:
            pending.future.set_result(response.result)

    def fail_all(self, exc: Exception) -> None:
        """Reject every outstanding request with exc."""
        for request_id in list(self._pending):
            pending = self._discard(request_id)
            if pending and not pending.future.done():
                pending.future.set_exception(exc)

    def _expire(self, request_id: int) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.future.done():
            return
        logger.warning(
            f"[{self.name}] {pending.method} (id={request_id}) timed out after {pending.timeout}s"
        )
        pending.future.set_exception(
            RequestTimeoutError(f"Request timeout: {pending.method} after {pending.timeout}s")
        )

    def _discard(self, request_id: int) -> PendingRequest | None:
        pending = self._pending.pop(request_id, None)
        if pending and pending.timer:
            pending.timer.cancel()
        return pending


class StdioTransport:
    """
    JSON-RPC over stdin/stdout pipes to a subprocess.

    The tool server runs as a child process. We write JSON-RPC
    requests to its stdin and read responses from its stdout.
    One line = one message. stderr is forwarded to the log.

    When the process exits, pending requests are not failed; they run out
    their own deadlines. Only stop() rejects them up front.
    """

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        name: str | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_pending: int | None = None,
    ):
        self.command = command
        self.args = list(args or [])
        self.env = env
        self.name = name or os.path.basename(command)
        self.on_exit: Callable[[int | None], None] | None = None
        self.multiplexer = RequestMultiplexer(
            self._write,
            default_timeout=request_timeout,
            max_pending=max_pending,
            name=self.name,
        )
        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task] = []
        self._exit_task: asyncio.Task | None = None
        self._closed = asyncio.Event()
        self.returncode: int | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    async def start(self) -> None:
        """Launch the tool server subprocess."""
        if self.is_alive():
            logger.warning(f"[{self.name}] transport already running, stopping first")
            await self.stop()

        env = {**os.environ, **(self.env or {})}
        logger.info(f"Starting stdio transport: {' '.join([self.command, *self.args])}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            self._closed.set()
            raise TransportError(f"[{self.name}] failed to spawn {self.command}: {e}") from e

        self.returncode = None
        self._closed.clear()
        self.multiplexer.framer = LineFramer()
        self._tasks = [
            asyncio.create_task(self._read_stdout(self._process)),
            asyncio.create_task(self._read_stderr(self._process)),
        ]
        self._exit_task = asyncio.create_task(self._watch_exit(self._process, list(self._tasks)))

    async def stop(self, grace: float = DEFAULT_KILL_GRACE) -> None:
        """Terminate the tool server subprocess. Safe to call repeatedly."""
        process = self._process
        if process is None:
            return

        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning(f"[{self.name}] did not exit after {grace}s, killing")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        if self._exit_task:
            await self._exit_task
        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        self.multiplexer.fail_all(TransportError(f"[{self.name}] transport stopped"))
        self._process = None
        self._tasks = []
        self._exit_task = None
        logger.info(f"[{self.name}] stdio transport stopped")

    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def wait_closed(self) -> int | None:
        """Wait for the process to exit and return its exit code."""
        await self._closed.wait()
        return self.returncode

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        if not self.is_alive():
            raise TransportError(f"[{self.name}] transport not running. Call start() first.")
        return await self.multiplexer.request(method, params, timeout=timeout)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        if not self.is_alive():
            raise TransportError(f"[{self.name}] transport not running. Call start() first.")
        await self.multiplexer.notify(method, params)

    async def _write(self, line: str) -> None:
        process = self._process
        if process is None or process.returncode is not None or process.stdin is None:
            raise TransportError(f"[{self.name}] MCP server not connected")
        process.stdin.write(line.encode("utf-8"))
        await process.stdin.drain()

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        while True:
            data = await process.stdout.read(READ_CHUNK_SIZE)
            if not data:
                break
            self.multiplexer.feed(data)

        tail = self.multiplexer.framer.pending
        if tail.strip():
            logger.warning(f"[{self.name}] stdout closed with unterminated data: {tail[:200]!r}")

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        while True:
            line = await process.stderr.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.warning(f"[{self.name}] stderr: {text}")

    async def _watch_exit(self, process: asyncio.subprocess.Process, readers: list[asyncio.Task]) -> None:
        returncode = await process.wait()
        # Let the readers drain whatever the server wrote before exiting.
        await asyncio.wait(readers, timeout=1.0)

        self.returncode = returncode
        self._closed.set()
        logger.info(f"[{self.name}] MCP server exited with code {returncode}")
        if self.on_exit:
            self.on_exit(returncode)
