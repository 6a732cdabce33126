"""Messages consumed by the dispatcher and the abstract commands it emits."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Union

from .models import ExchangeDetail, ExchangeSummary, SocketEntry
from .store import DetailTab


# ----------------------------------------------------------------------
# Results posted by background tasks
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class SummariesReceived:
    session_id: str
    watermark: Optional[int]
    summaries: List[ExchangeSummary] = field(default_factory=list)


@dataclass(frozen=True)
class DetailReceived:
    session_id: str
    request_id: str
    detail: ExchangeDetail


@dataclass(frozen=True)
class DetailFailed:
    session_id: str
    request_id: str
    error: str


@dataclass(frozen=True)
class CaptureUnavailable:
    session_id: str
    reason: str = ""


@dataclass(frozen=True)
class CaptureStarted:
    session_id: str
    handles: Any


@dataclass(frozen=True)
class SocketsReceived:
    session_id: str
    sockets: List[SocketEntry] = field(default_factory=list)


@dataclass(frozen=True)
class CaptureAlive:
    """Capture is enabled, or a poll succeeded with nothing new."""

    session_id: str
    watermark: Optional[int] = None


@dataclass(frozen=True)
class RemoteCleared:
    session_id: str


# ----------------------------------------------------------------------
# Session lifecycle and operator input
# ----------------------------------------------------------------------
class NavDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"


@dataclass(frozen=True)
class SessionAttached:
    session_id: str


@dataclass(frozen=True)
class SessionDetached:
    session_id: str


@dataclass(frozen=True)
class OpenPanel:
    session_id: str


@dataclass(frozen=True)
class StopCapture:
    session_id: str


@dataclass(frozen=True)
class Navigate:
    session_id: str
    direction: NavDirection


@dataclass(frozen=True)
class SelectIndex:
    session_id: str
    index: Optional[int]


@dataclass(frozen=True)
class ToggleCapture:
    session_id: str


@dataclass(frozen=True)
class ClearHistory:
    session_id: str


@dataclass(frozen=True)
class FilterChanged:
    session_id: str
    text: str


@dataclass(frozen=True)
class SwitchDetailTab:
    session_id: str
    tab: DetailTab


# ----------------------------------------------------------------------
# Abstract commands; ``handle`` is filled in by the binder
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class StartCapture:
    session_id: str
    interval_s: float
    handle: Any = None


@dataclass(frozen=True)
class FetchDetail:
    session_id: str
    request_id: str
    handle: Any = None


@dataclass(frozen=True)
class ClearRemote:
    session_id: str
    handle: Any = None


Command = Union[StartCapture, FetchDetail, ClearRemote]

Message = Union[
    SummariesReceived,
    DetailReceived,
    DetailFailed,
    CaptureUnavailable,
    CaptureStarted,
    SocketsReceived,
    CaptureAlive,
    RemoteCleared,
    SessionAttached,
    SessionDetached,
    OpenPanel,
    StopCapture,
    Navigate,
    SelectIndex,
    ToggleCapture,
    ClearHistory,
    FilterChanged,
    SwitchDetailTab,
]
