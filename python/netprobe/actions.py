"""Turn bound commands into running background tasks."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .capture import CaptureLoop, ClearRemoteTask, DetailFetcher, PostFn
from .client import NetworkClient
from .config import MonitorConfig
from .messages import ClearRemote, Command, FetchDetail, StartCapture
from .service import ServiceHandle


logger = logging.getLogger(__name__)


class CommandRunner:
    """Spawn the task matching a bound command; tasks report through ``post``."""

    def __init__(
        self,
        post: PostFn,
        *,
        client_factory: Callable[[ServiceHandle], NetworkClient] = NetworkClient,
        config: Optional[MonitorConfig] = None,
    ) -> None:
        self.post = post
        self.client_factory = client_factory
        self.config = config or MonitorConfig()

    def run(self, command: Command) -> Any:
        if command.handle is None:
            raise ValueError(f"{type(command).__name__} has not been bound to a handle")
        logger.debug("running %s for %s", type(command).__name__, command.session_id)
        client = self.client_factory(command.handle)
        if isinstance(command, StartCapture):
            loop = CaptureLoop(
                client,
                command.session_id,
                self.post,
                interval_s=command.interval_s,
                socket_capture=self.config.socket_capture,
            )
            return loop.start()
        if isinstance(command, FetchDetail):
            return DetailFetcher(client, command.session_id, command.request_id, self.post).start()
        if isinstance(command, ClearRemote):
            return ClearRemoteTask(client, command.session_id, self.post).start()
        raise TypeError(f"unsupported command {command!r}")
