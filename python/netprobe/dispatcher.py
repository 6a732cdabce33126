"""Single consumer of messages; owns every TrafficStore."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .actions import CommandRunner
from .binder import CommandBinder, SessionRegistry
from .capture import CaptureHandles
from .config import MonitorConfig
from .messages import (
    CaptureAlive,
    CaptureStarted,
    CaptureUnavailable,
    ClearHistory,
    ClearRemote,
    Command,
    DetailFailed,
    DetailReceived,
    FetchDetail,
    FilterChanged,
    Message,
    NavDirection,
    Navigate,
    OpenPanel,
    RemoteCleared,
    SelectIndex,
    SessionAttached,
    SessionDetached,
    SocketsReceived,
    StartCapture,
    StopCapture,
    SummariesReceived,
    SwitchDetailTab,
    ToggleCapture,
)
from .store import Availability, TrafficStore


logger = logging.getLogger(__name__)

Subscriber = Callable[[Message], None]

HANDLE_UNAVAILABLE = "service handle unavailable"


class UpdateDispatcher:
    """Apply messages to per-session stores and launch the commands they yield.

    ``post`` is safe from any thread. Everything else, ``pump`` included, is
    meant for the one consuming thread (or the worker started by ``start``).
    """

    def __init__(
        self,
        registry: Optional[SessionRegistry] = None,
        runner: Optional[Any] = None,
        *,
        config: Optional[MonitorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or MonitorConfig()
        self.registry = registry or SessionRegistry()
        self.binder = CommandBinder(self.registry)
        self.runner = runner or CommandRunner(self.post, config=self.config)
        self.stores: Dict[str, TrafficStore] = {}
        self.handles: Dict[str, CaptureHandles] = {}
        self._clock = clock
        self._queue: "queue.Queue[Message]" = queue.Queue()
        self._subscribers: List[Subscriber] = []
        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._interval = 0.05

    def store(self, session_id: str) -> Optional[TrafficStore]:
        return self.stores.get(session_id)

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------
    def post(self, message: Message) -> None:
        self._queue.put(message)

    def pump(self, timeout: Optional[float] = None) -> int:
        """Apply queued messages in arrival order; returns how many ran.

        With ``timeout`` the call blocks up to that long for the first message.
        """
        processed = 0
        if timeout is not None:
            try:
                message = self._queue.get(timeout=timeout)
            except queue.Empty:
                return 0
            self.dispatch(message)
            processed += 1
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                break
            self.dispatch(message)
            processed += 1
        return processed

    def dispatch(self, message: Message) -> None:
        for command in self.update(message):
            bound = self.binder.bind(command)
            if bound is None:
                if isinstance(command, FetchDetail):
                    self.post(DetailFailed(command.session_id, command.request_id, HANDLE_UNAVAILABLE))
                continue
            self.runner.run(bound)
        for callback in list(self._subscribers):
            callback(message)

    def start(self, interval: float = 0.05) -> None:
        """Pump the queue on a background thread."""

        self._interval = interval
        if self._worker and self._worker.is_alive():
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._run, name="netprobe-dispatch", daemon=True)
        self._worker.start()

    def stop(self) -> None:
        self._stop_event.set()
        worker = self._worker
        if worker and worker.is_alive() and worker is not threading.current_thread():
            worker.join(timeout=0.5)
        self._worker = None

    def shutdown(self) -> None:
        """Stop the pump and signal every capture loop."""
        self.stop()
        for session_id in list(self.handles):
            self._drop_handles(session_id)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.pump()
        self.pump()

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------
    def update(self, message: Message) -> List[Command]:
        """Apply ``message``; returns abstract commands for the binder."""
        session_id = message.session_id

        if isinstance(message, SessionAttached):
            store = self.stores.get(session_id)
            if store is None:
                self.stores[session_id] = self._new_store()
            else:
                store.reset()
            return []
        if isinstance(message, SessionDetached):
            self._drop_handles(session_id)
            self.stores.pop(session_id, None)
            return []
        if isinstance(message, CaptureStarted):
            return self._on_capture_started(message)

        store = self.stores.get(session_id)
        if store is None:
            if not isinstance(message, OpenPanel):
                logger.debug("ignoring %s for unknown session %s", type(message).__name__, session_id)
                return []
            store = self.stores[session_id] = self._new_store()

        if isinstance(message, OpenPanel):
            return self._on_open_panel(session_id, store)
        if isinstance(message, SummariesReceived):
            store.record_poll(message.watermark, message.summaries, now=self._clock())
            return []
        if isinstance(message, CaptureAlive):
            if store.availability is not Availability.UNAVAILABLE:
                store.record_poll(message.watermark, [], now=self._clock())
            return []
        if isinstance(message, DetailReceived):
            if message.detail.id != message.request_id or not store.apply_detail(message.detail):
                logger.debug("discarding stale detail for %s", message.request_id)
            return []
        if isinstance(message, DetailFailed):
            if not store.apply_detail_failure(message.request_id, message.error):
                logger.debug("discarding stale detail failure for %s", message.request_id)
            return []
        if isinstance(message, CaptureUnavailable):
            store.mark_unavailable()
            self._drop_handles(session_id)
            return []
        if isinstance(message, SocketsReceived):
            store.sockets = list(message.sockets)
            return []
        if isinstance(message, Navigate):
            if message.direction is NavDirection.UP:
                store.select_previous()
            elif message.direction is NavDirection.DOWN:
                store.select_next()
            elif message.direction is NavDirection.PAGE_UP:
                store.select_page_up()
            else:
                store.select_page_down()
            return self._fetch_selected(session_id, store)
        if isinstance(message, SelectIndex):
            store.select_by_index(message.index)
            return self._fetch_selected(session_id, store)
        if isinstance(message, ToggleCapture):
            if store.availability is not Availability.UNAVAILABLE:
                store.capture_enabled = not store.capture_enabled
            return []
        if isinstance(message, ClearHistory):
            store.clear()
            return [ClearRemote(session_id)]
        if isinstance(message, RemoteCleared):
            handles = self.handles.get(session_id)
            if handles is not None:
                handles.rewind()
            return []
        if isinstance(message, FilterChanged):
            store.set_filter(message.text)
            return []
        if isinstance(message, SwitchDetailTab):
            store.detail_tab = message.tab
            return []
        if isinstance(message, StopCapture):
            self._drop_handles(session_id)
            return []
        logger.warning("unhandled message %r", message)
        return []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _new_store(self) -> TrafficStore:
        return TrafficStore(max_entries=self.config.max_entries, auto_record=self.config.auto_record)

    def _on_open_panel(self, session_id: str, store: TrafficStore) -> List[Command]:
        if store.availability is Availability.UNAVAILABLE:
            return []
        handles = self.handles.get(session_id)
        running = handles is not None and handles.is_alive() and not handles.stopped
        if running and store.is_fresh(self._clock(), self.config.stale_after_s):
            return []
        return [StartCapture(session_id, self.config.effective_interval_s)]

    def _on_capture_started(self, message: CaptureStarted) -> List[Command]:
        session_id = message.session_id
        if session_id not in self.stores:
            message.handles.stop()
            return []
        previous = self.handles.get(session_id)
        if previous is not None and previous is not message.handles:
            previous.stop()
        self.handles[session_id] = message.handles
        return []

    def _drop_handles(self, session_id: str) -> None:
        handles = self.handles.pop(session_id, None)
        if handles is not None:
            handles.stop()

    def _fetch_selected(self, session_id: str, store: TrafficStore) -> List[Command]:
        request_id = store.begin_detail_fetch()
        if request_id is None:
            return []
        return [FetchDetail(session_id, request_id)]
