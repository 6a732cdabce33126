"""
Transport layer for netprobe.

Responsibilities:
    * Manage a newline-delimited JSON-RPC 2.0 connection to the service port
      exposed by the observed process.
    * Match responses to callers by request id.
    * Report disconnects so cached per-connection state can be dropped.
"""

from __future__ import annotations

import itertools
import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, BinaryIO, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)

StateCallback = Callable[[str], None]


class TransportError(RuntimeError):
    """Raised when the transport cannot complete an operation."""


class RpcTimeout(TransportError):
    """No answer arrived within the read timeout; the request is not retried."""


class RpcError(TransportError):
    """The remote side answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"rpc error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class TransportConfig:
    host: str = "127.0.0.1"
    port: int = 8181
    connect_timeout: float = 2.0
    read_timeout: float = 5.0
    reconnect_backoff: float = 0.5
    max_backoff: float = 5.0
    max_retries: int = 5
    request_retries: int = 2


_NO_ANSWER = object()


@dataclass
class ServiceTransport:
    """Synchronous JSON-RPC client; one reader thread demultiplexes answers."""

    config: TransportConfig = field(default_factory=TransportConfig)

    _sock: Optional[socket.socket] = field(init=False, default=None)
    _reader: Optional[BinaryIO] = field(init=False, default=None)
    _reader_thread: Optional[threading.Thread] = field(init=False, default=None)
    _ids: Any = field(init=False, default_factory=lambda: itertools.count(1))
    _waiters: Dict[int, Any] = field(init=False, default_factory=dict)
    _cv: threading.Condition = field(init=False, default_factory=threading.Condition)
    _connect_lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _send_lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _state: ConnectionState = field(init=False, default=ConnectionState.DISCONNECTED)
    _shutdown: bool = field(init=False, default=False)
    _on_disconnect: List[StateCallback] = field(init=False, default_factory=list)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    def register_on_disconnect(self, callback: StateCallback) -> None:
        self._on_disconnect.append(callback)

    def connect(self, *, retry: bool = True) -> None:
        with self._connect_lock:
            if self._sock is not None:
                return
            if self._shutdown:
                raise TransportError("transport closed")
            self._set_state(ConnectionState.CONNECTING)
            try:
                sock = self._open_socket(retry=retry)
            except TransportError:
                self._set_state(ConnectionState.DISCONNECTED)
                raise
            sock.settimeout(None)
            self._sock = sock
            self._reader = sock.makefile("rb")
            self._reader_thread = threading.Thread(
                target=self._read_loop,
                args=(self._reader,),
                name="netprobe-rpc-reader",
                daemon=True,
            )
            self._reader_thread.start()
            logger.debug("connected to %s:%s", self.config.host, self.config.port)
            self._set_state(ConnectionState.CONNECTED)

    def close(self) -> None:
        self._shutdown = True
        self._drop_connection()
        thread = self._reader_thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=0.5)

    def call(self, method: str, params: Optional[Dict[str, Any]] = None, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Invoke ``method`` and return its ``result`` object.

        Raises :class:`RpcError` when the peer answers with an error object and
        :class:`TransportError` when no answer could be obtained. Non-object
        results are wrapped as ``{"value": result}``.
        """
        response = self._request(method, dict(params or {}), timeout)
        error = response.get("error")
        if error is not None:
            if isinstance(error, dict):
                code = error.get("code")
                raise RpcError(
                    code if isinstance(code, int) else 0,
                    str(error.get("message") or ""),
                    error.get("data"),
                )
            raise RpcError(0, str(error))
        result = response.get("result")
        if result is None:
            return {}
        if not isinstance(result, dict):
            return {"value": result}
        return result

    # ------------------------------------------------------------------
    # Request/response plumbing
    # ------------------------------------------------------------------
    def _request(self, method: str, params: Dict[str, Any], timeout: Optional[float]) -> Dict[str, Any]:
        attempts = max(1, self.config.request_retries)
        for attempt in range(attempts):
            try:
                return self._roundtrip(method, params, timeout)
            except RpcTimeout:
                raise
            except TransportError as exc:
                if self._shutdown or attempt + 1 >= attempts:
                    raise TransportError(f"{method} failed: {exc}") from exc
                logger.debug("%s failed (%s), retrying", method, exc)
                time.sleep(self.config.reconnect_backoff)
        raise TransportError(f"{method} failed")

    def _roundtrip(self, method: str, params: Dict[str, Any], timeout: Optional[float]) -> Dict[str, Any]:
        if self._shutdown:
            raise TransportError("transport closed")
        self.connect()
        request_id = next(self._ids)
        frame = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        data = json.dumps(frame, separators=(",", ":")).encode("utf-8") + b"\n"
        with self._cv:
            self._waiters[request_id] = _NO_ANSWER
        try:
            sock = self._sock
            if sock is None:
                raise OSError("socket closed")
            with self._send_lock:
                sock.sendall(data)
        except OSError as exc:
            with self._cv:
                self._waiters.pop(request_id, None)
            self._drop_connection()
            raise TransportError(f"send failed: {exc}") from exc
        return self._await(request_id, timeout or self.config.read_timeout)

    def _await(self, request_id: int, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        with self._cv:
            try:
                while self._waiters.get(request_id) is _NO_ANSWER:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise RpcTimeout("rpc timeout")
                    self._cv.wait(timeout=remaining)
                answer = self._waiters.get(request_id)
            finally:
                self._waiters.pop(request_id, None)
        if answer is None:
            raise TransportError("connection closed")
        return answer

    def _read_loop(self, reader: BinaryIO) -> None:
        try:
            for line in reader:
                if not line.strip():
                    continue
                try:
                    message = json.loads(line.decode("utf-8"))
                except (json.JSONDecodeError, UnicodeDecodeError):
                    logger.debug("ignoring undecodable frame")
                    continue
                if not isinstance(message, dict):
                    continue
                if "method" in message and "id" not in message:
                    logger.debug("ignoring notification %s", message.get("method"))
                    continue
                self._deliver(message)
        except (OSError, ValueError) as exc:
            logger.debug("reader stopped: %s", exc)
        finally:
            reader.close()
        self._drop_connection(reader)

    def _deliver(self, message: Dict[str, Any]) -> None:
        request_id = message.get("id")
        with self._cv:
            if not isinstance(request_id, int) or request_id not in self._waiters:
                logger.debug("dropping response for unknown id %r", request_id)
                return
            self._waiters[request_id] = message
            self._cv.notify_all()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------
    def _open_socket(self, *, retry: bool) -> socket.socket:
        attempt = 0
        backoff = self.config.reconnect_backoff
        last_error: Optional[OSError] = None
        while not self._shutdown:
            attempt += 1
            try:
                return socket.create_connection(
                    (self.config.host, self.config.port),
                    timeout=self.config.connect_timeout,
                )
            except OSError as exc:
                last_error = exc
                if not retry or (self.config.max_retries > 0 and attempt >= self.config.max_retries):
                    break
                time.sleep(backoff)
                backoff = min(backoff * 2, self.config.max_backoff)
        if last_error is None:
            raise TransportError("connect failed: transport closed")
        raise TransportError(f"connect failed: {last_error}") from last_error

    def _drop_connection(self, reader: Optional[BinaryIO] = None) -> None:
        """Tear down the current connection; ``reader`` limits it to that one."""
        with self._connect_lock:
            if reader is not None and self._reader is not reader:
                return
            sock = self._sock
            self._sock = None
            self._reader = None
            went_down = self._state is not ConnectionState.DISCONNECTED
            self._state = ConnectionState.DISCONNECTED
        if sock is not None:
            # Wakes the reader thread; it closes its own file object.
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        with self._cv:
            for request_id, answer in list(self._waiters.items()):
                if answer is _NO_ANSWER:
                    self._waiters[request_id] = None
            self._cv.notify_all()
        if went_down:
            self._notify_disconnect()

    def _set_state(self, new_state: ConnectionState) -> None:
        if self._state is new_state:
            return
        self._state = new_state
        if new_state is ConnectionState.DISCONNECTED:
            self._notify_disconnect()

    def _notify_disconnect(self) -> None:
        for callback in list(self._on_disconnect):
            try:
                callback(ConnectionState.DISCONNECTED.value)
            except Exception:
                logger.debug("state callback failed", exc_info=True)
