"""Session registry and the binder that attaches live handles to commands."""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Dict, List, Optional

from .messages import Command
from .service import ServiceHandle


logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns the live :class:`ServiceHandle` for each attached session."""

    def __init__(self) -> None:
        self._handles: Dict[str, ServiceHandle] = {}
        self._lock = threading.Lock()

    def attach(self, session_id: str, handle: ServiceHandle) -> None:
        with self._lock:
            self._handles[session_id] = handle

    def detach(self, session_id: str) -> Optional[ServiceHandle]:
        with self._lock:
            return self._handles.pop(session_id, None)

    def get_handle(self, session_id: str) -> Optional[ServiceHandle]:
        with self._lock:
            return self._handles.get(session_id)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._handles)


class CommandBinder:
    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    def bind(self, command: Command) -> Optional[Command]:
        """Return ``command`` addressed to its session's handle, or None."""
        if command.handle is not None:
            return command
        handle = self.registry.get_handle(command.session_id)
        if handle is None:
            logger.debug("dropping %s: no live handle for %s", type(command).__name__, command.session_id)
            return None
        return dataclasses.replace(command, handle=handle)
