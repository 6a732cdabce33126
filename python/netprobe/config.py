"""Monitor configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .store import DEFAULT_MAX_ENTRIES


logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL_S = 0.5
DEFAULT_POLL_INTERVAL_S = 1.0
DEFAULT_STALE_AFTER_S = 30.0

ENV_MAX_ENTRIES = "NETPROBE_MAX_ENTRIES"
ENV_POLL_INTERVAL = "NETPROBE_POLL_INTERVAL"
ENV_STALE_AFTER = "NETPROBE_STALE_AFTER"


@dataclass
class MonitorConfig:
    max_entries: int = DEFAULT_MAX_ENTRIES
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    auto_record: bool = True
    socket_capture: bool = True
    stale_after_s: float = DEFAULT_STALE_AFTER_S

    @property
    def effective_interval_s(self) -> float:
        return max(MIN_POLL_INTERVAL_S, float(self.poll_interval_s))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MonitorConfig":
        env = os.environ if environ is None else environ
        config = cls()
        max_entries = _env_number(env, ENV_MAX_ENTRIES, int)
        if max_entries is not None and max_entries >= 1:
            config.max_entries = max_entries
        interval = _env_number(env, ENV_POLL_INTERVAL, float)
        if interval is not None and interval > 0:
            config.poll_interval_s = interval
        stale = _env_number(env, ENV_STALE_AFTER, float)
        if stale is not None and stale >= 0:
            config.stale_after_s = stale
        return config


def _env_number(env: Mapping[str, str], name: str, kind):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return kind(raw.strip())
    except ValueError:
        logger.warning("ignoring invalid %s=%r", name, raw)
        return None
