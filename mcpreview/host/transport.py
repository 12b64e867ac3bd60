"""Tool server communication via stdio subprocess transport."""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional

from mcpreview.errors import JsonRpcError, TransportError, TransportTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0
READ_CHUNK_SIZE = 64 * 1024
STOP_GRACE_PERIOD = 5.0

NotificationHandler = Callable[[str, Any], None]
ErrorHandler = Callable[[Exception], None]
CloseHandler = Callable[[Optional[int]], None]


class StdioTransport:
    """
    Talk to one tool server over stdin/stdout with newline-delimited JSON-RPC 2.0.

    Requests are correlated to responses by id, so several may be in flight
    at once. Out-of-band traffic (server notifications, malformed lines,
    stderr output, process exit) is delivered to registered observers and
    never interferes with correlation.
    """

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.command = command
        self.args = args or []
        self.cwd = cwd
        self.env = env or {}
        self.request_timeout = request_timeout

        self._process: Optional[asyncio.subprocess.Process] = None
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._request_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._reader_tasks: List[asyncio.Task] = []

        self._notification_handlers: List[NotificationHandler] = []
        self._error_handlers: List[ErrorHandler] = []
        self._close_handlers: List[CloseHandler] = []

    # ── Observers ─────────────────────────────────────────────────────────

    def on_notification(self, handler: NotificationHandler) -> None:
        self._notification_handlers.append(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        self._error_handlers.append(handler)

    def on_close(self, handler: CloseHandler) -> None:
        self._close_handlers.append(handler)

    def _emit(self, handlers: List[Callable[..., None]], *args: Any) -> None:
        for handler in list(handlers):
            try:
                handler(*args)
            except Exception:
                logger.exception("Transport event handler failed (%s)", self.command)

    def _emit_error(self, error: Exception) -> None:
        if not self._error_handlers:
            logger.debug("[%s] %s", self.command, error)
        self._emit(self._error_handlers, error)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def start(self) -> None:
        """
        Spawn the server subprocess with piped stdio.

        Returns once the process exists. Application-level readiness is
        established afterwards by the ``initialize`` handshake. OS errors
        from the spawn (missing executable, permissions) propagate.
        """
        if self.is_running:
            return

        merged_env = {**os.environ, **self.env}
        self._process = await asyncio.create_subprocess_exec(
            self.command,
            *self.args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            env=merged_env,
        )
        self._buffer = ""
        self._decoder.reset()
        self._reader_tasks = [
            asyncio.create_task(self._read_stdout(self._process)),
            asyncio.create_task(self._read_stderr(self._process)),
        ]

    async def stop(self) -> None:
        """
        Terminate the subprocess.

        Still-pending requests are abandoned, not rejected: their callers
        only see the per-request timeout.
        """
        process, self._process = self._process, None
        tasks, self._reader_tasks = self._reader_tasks, []

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if process is not None and process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=STOP_GRACE_PERIOD)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()

        self._pending.clear()
        self._buffer = ""

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
        """Send a request and wait for the matching response's ``result``."""
        if timeout is None:
            timeout = self.request_timeout

        self._request_id += 1
        request_id = self._request_id
        message: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            self._send(message)
            await self._drain()
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise TransportTimeoutError(method, timeout) from None
        finally:
            self._pending.pop(request_id, None)

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a notification. No id, no response."""
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        self._send(message)

    def _send(self, message: Dict[str, Any]) -> None:
        if self._process is None or self._process.stdin is None:
            raise TransportError("Transport not started")

        line = json.dumps(message) + "\n"
        try:
            self._process.stdin.write(line.encode("utf-8"))
        except (BrokenPipeError, ConnectionResetError, RuntimeError) as exc:
            raise TransportError(f"Transport write failed: {exc}", cause=exc) from exc

    async def _drain(self) -> None:
        if self._process is None or self._process.stdin is None:
            return
        try:
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise TransportError(f"Transport write failed: {exc}", cause=exc) from exc

    # ── Inbound ───────────────────────────────────────────────────────────

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        while True:
            chunk = await process.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            self._handle_data(self._decoder.decode(chunk))
        returncode = await process.wait()
        self._emit(self._close_handlers, returncode)

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        while True:
            chunk = await process.stderr.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            text = chunk.decode("utf-8", errors="replace").strip()
            if text:
                self._emit_error(TransportError(text))

    def _handle_data(self, data: str) -> None:
        """Append a chunk and dispatch every complete line; keep the remainder."""
        self._buffer += data
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            if not line.strip():
                continue
            try:
                self._handle_message(line)
            except Exception as exc:
                self._emit_error(TransportError(f"Failed to handle message: {exc}", cause=exc))

    def _handle_message(self, line: str) -> None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            self._emit_error(TransportError(f"Failed to parse message: {line}"))
            return

        if not isinstance(message, dict):
            self._emit_error(TransportError(f"Unexpected message shape: {line}"))
            return

        request_id = message.get("id")
        if request_id is not None:
            if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
                self._emit_error(TransportError(f"Invalid response id: {line}"))
                return
            future = self._pending.pop(request_id, None)
            if future is None or future.done():
                # Late response to a request that already timed out
                return
            error = message.get("error")
            if error is not None and not isinstance(error, dict):
                error = {"message": str(error)}
            if error:
                future.set_exception(
                    JsonRpcError(
                        str(error.get("message", "Unknown error")),
                        rpc_code=error.get("code"),
                        data=error.get("data"),
                    )
                )
            else:
                future.set_result(message.get("result"))
        elif "method" in message:
            self._emit(self._notification_handlers, message["method"], message.get("params"))
        else:
            self._emit_error(TransportError(f"Unroutable message: {line}"))
