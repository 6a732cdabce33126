"""Background tasks: the periodic capture loop and one-shot fetchers.

Tasks never touch a :class:`~python.netprobe.store.TrafficStore`; every
result is handed to ``post`` as a message for the dispatcher to apply.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

from .client import NetworkClient
from .config import MIN_POLL_INTERVAL_S
from .errors import FeatureUnavailableError, IntrospectionError
from .messages import (
    CaptureAlive,
    CaptureStarted,
    CaptureUnavailable,
    DetailFailed,
    DetailReceived,
    RemoteCleared,
    SocketsReceived,
    SummariesReceived,
)
from .models import SocketEntry


logger = logging.getLogger(__name__)

PostFn = Callable[[Any], None]


class CaptureState(str, Enum):
    IDLE = "idle"
    ENABLING = "enabling"
    POLLING = "polling"
    UNAVAILABLE = "unavailable"
    STOPPED = "stopped"


@dataclass
class CaptureHandles:
    """Lifecycle bundle of a running capture loop, owned by its session."""

    thread: Optional[threading.Thread] = None
    stop_event: threading.Event = field(default_factory=threading.Event)
    rewind_event: threading.Event = field(default_factory=threading.Event)

    def stop(self, join_timeout: Optional[float] = None) -> None:
        self.stop_event.set()
        thread = self.thread
        if join_timeout is None or thread is None or not thread.is_alive():
            return
        if thread is threading.current_thread():
            return
        thread.join(timeout=join_timeout)

    def rewind(self) -> None:
        """Make the next tick a full, non-incremental fetch."""
        self.rewind_event.set()

    def is_alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()


class CaptureLoop:
    """Enable HTTP capture on the observed process and poll it on an interval."""

    def __init__(
        self,
        client: NetworkClient,
        session_id: str,
        post: PostFn,
        *,
        interval_s: float = 1.0,
        socket_capture: bool = True,
    ) -> None:
        self.client = client
        self.session_id = session_id
        self.post = post
        self.interval_s = max(MIN_POLL_INTERVAL_S, float(interval_s))
        self.socket_capture = socket_capture
        self.state = CaptureState.IDLE
        self.watermark: Optional[int] = None
        self.handles = CaptureHandles()
        self._sockets_enabled = False
        self._last_sockets: Optional[List[SocketEntry]] = None

    def start(self) -> CaptureHandles:
        thread = threading.Thread(
            target=self.run,
            name=f"netprobe-capture-{self.session_id}",
            daemon=True,
        )
        self.handles.thread = thread
        thread.start()
        return self.handles

    def run(self) -> None:
        """Loop body; runs on the capture thread (or inline in tests)."""
        stop = self.handles.stop_event
        self.post(CaptureStarted(self.session_id, self.handles))
        if stop.is_set():
            self.state = CaptureState.STOPPED
            return
        if not self._enable():
            return
        self.state = CaptureState.POLLING
        logger.info("capture polling for %s every %.2fs", self.session_id, self.interval_s)
        while not stop.is_set():
            if not self.tick():
                return
            if stop.wait(self.interval_s):
                break
        self.state = CaptureState.STOPPED
        logger.info("capture stopped for %s", self.session_id)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _enable(self) -> bool:
        self.state = CaptureState.ENABLING
        try:
            self.client.enable_capture(True)
        except FeatureUnavailableError as exc:
            self._mark_unavailable(str(exc))
            return False
        except IntrospectionError as exc:
            logger.warning("enabling HTTP capture for %s failed: %s", self.session_id, exc)
        else:
            self.post(CaptureAlive(self.session_id))
        if self.socket_capture:
            try:
                self._sockets_enabled = self.client.set_socket_capture(True)
            except IntrospectionError as exc:
                logger.debug("socket capture unavailable for %s: %s", self.session_id, exc)
                self._sockets_enabled = False
        return True

    def tick(self) -> bool:
        """Run one poll; returns False when the loop must terminate."""
        if self.handles.rewind_event.is_set():
            self.handles.rewind_event.clear()
            self.watermark = None
        try:
            profile = self.client.fetch_summaries(self.watermark)
        except FeatureUnavailableError as exc:
            self._mark_unavailable(str(exc))
            return False
        except IntrospectionError as exc:
            logger.debug("poll for %s failed: %s", self.session_id, exc)
            return True
        if profile.watermark is not None:
            self.watermark = profile.watermark
        if profile.summaries:
            self.post(SummariesReceived(self.session_id, self.watermark, list(profile.summaries)))
        else:
            self.post(CaptureAlive(self.session_id, self.watermark))
        if self._sockets_enabled:
            self._poll_sockets()
        return True

    def _poll_sockets(self) -> None:
        try:
            sockets = self.client.fetch_sockets()
        except IntrospectionError as exc:
            logger.debug("socket profile for %s failed: %s", self.session_id, exc)
            return
        if sockets != self._last_sockets:
            self._last_sockets = sockets
            self.post(SocketsReceived(self.session_id, list(sockets)))

    def _mark_unavailable(self, reason: str) -> None:
        self.state = CaptureState.UNAVAILABLE
        logger.info("network capture unavailable for %s: %s", self.session_id, reason)
        self.post(CaptureUnavailable(self.session_id, reason))


class DetailFetcher:
    """One-shot fetch of a single exchange's full record."""

    def __init__(self, client: NetworkClient, session_id: str, request_id: str, post: PostFn) -> None:
        self.client = client
        self.session_id = session_id
        self.request_id = request_id
        self.post = post

    def start(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, name="netprobe-detail", daemon=True)
        thread.start()
        return thread

    def run(self) -> None:
        try:
            detail = self.client.fetch_detail(self.request_id)
        except IntrospectionError as exc:
            logger.debug("detail fetch for %s/%s failed: %s", self.session_id, self.request_id, exc)
            self.post(DetailFailed(self.session_id, self.request_id, str(exc)))
            return
        self.post(DetailReceived(self.session_id, self.request_id, detail))


class ClearRemoteTask:
    """Clear the remote HTTP profile; posts ``RemoteCleared`` once it is gone."""

    def __init__(self, client: NetworkClient, session_id: str, post: PostFn) -> None:
        self.client = client
        self.session_id = session_id
        self.post = post

    def start(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, name="netprobe-clear", daemon=True)
        thread.start()
        return thread

    def run(self) -> None:
        try:
            self.client.clear_remote()
        except IntrospectionError as exc:
            logger.warning("clearing remote profile for %s failed: %s", self.session_id, exc)
            return
        self.post(RemoteCleared(self.session_id))
