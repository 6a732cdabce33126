"""Live handle to the observed process, built on top of the RPC transport."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from .transport import ServiceTransport, TransportConfig, TransportError


logger = logging.getLogger(__name__)


class ServiceHandle:
    """Borrowable handle used to issue extension calls against one process.

    The handle resolves the main isolate once (``getVM``) and caches its id;
    every extension call is addressed to that isolate. The cache is dropped
    whenever the connection goes down, so a reconnect re-resolves it.
    """

    def __init__(
        self,
        transport: Optional[ServiceTransport] = None,
        *,
        transport_config: Optional[TransportConfig] = None,
        isolate_id: Optional[str] = None,
    ) -> None:
        self.transport = transport or ServiceTransport(transport_config or TransportConfig())
        self._isolate_id = isolate_id
        self._isolate_lock = threading.Lock()
        self.transport.register_on_disconnect(self._on_disconnect)

    def open(self) -> str:
        """Connect and resolve the main isolate. Returns the isolate id."""
        self.transport.connect()
        return self.main_isolate_id()

    def close(self) -> None:
        self.transport.close()
        self.forget_isolate()

    def main_isolate_id(self) -> str:
        with self._isolate_lock:
            if self._isolate_id:
                return self._isolate_id
        vm = self.transport.call("getVM")
        isolates = vm.get("isolates")
        isolate_id = _first_isolate_id(isolates)
        if not isolate_id:
            raise TransportError("getVM response lists no isolates")
        with self._isolate_lock:
            self._isolate_id = isolate_id
        logger.debug("resolved main isolate %s", isolate_id)
        return isolate_id

    def forget_isolate(self) -> None:
        """Drop the cached isolate id (e.g. after a hot restart)."""
        with self._isolate_lock:
            self._isolate_id = None

    def _on_disconnect(self, state: str) -> None:
        if self._isolate_id is not None:
            logger.debug("connection %s, forgetting isolate %s", state, self._isolate_id)
        self.forget_isolate()

    def call_extension(
        self,
        method: str,
        args: Optional[Dict[str, str]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"isolateId": self.main_isolate_id()}
        for key, value in (args or {}).items():
            params[key] = str(value)
        return self.transport.call(method, params, timeout=timeout)


def _first_isolate_id(isolates: Any) -> Optional[str]:
    if not isinstance(isolates, list):
        return None
    candidates: List[str] = []
    for isolate in isolates:
        if not isinstance(isolate, dict):
            continue
        isolate_id = isolate.get("id")
        if isinstance(isolate_id, str) and isolate_id:
            if isolate.get("isSystemIsolate"):
                continue
            candidates.append(isolate_id)
    return candidates[0] if candidates else None
