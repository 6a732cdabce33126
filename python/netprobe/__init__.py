"""
netprobe - live HTTP traffic observation for an attached process.

The package polls the HTTP profiling extensions of a running process over
its service port and keeps a bounded, navigable history per session:

    transport.py   → JSON-RPC framing over TCP
    service.py     → live handle (isolate resolution, extension calls)
    profile.py     → tolerant parsers for profile payloads
    client.py      → typed profiling calls and the failure taxonomy
    store.py       → per-session history, selection, filter
    capture.py     → polling loop and one-shot fetch tasks
    binder.py      → session registry and command binding
    dispatcher.py  → single consumer of messages
"""

from .transport import RpcError, ServiceTransport, TransportConfig, TransportError  # noqa: F401
from .service import ServiceHandle  # noqa: F401
from .models import (  # noqa: F401
    ConnectionInfo,
    ExchangeDetail,
    ExchangeSummary,
    SocketEntry,
    TimelineEvent,
    TimingBreakdown,
)
from .errors import FeatureUnavailableError, IntrospectionError, TransientProtocolError  # noqa: F401
from .client import NetworkClient  # noqa: F401
from .store import Availability, DetailTab, TrafficStore  # noqa: F401
from .config import MonitorConfig  # noqa: F401
from .capture import CaptureHandles, CaptureLoop, CaptureState, DetailFetcher  # noqa: F401
from .binder import CommandBinder, SessionRegistry  # noqa: F401
from .dispatcher import UpdateDispatcher  # noqa: F401

__all__ = [
    "ServiceTransport",
    "TransportConfig",
    "TransportError",
    "RpcError",
    "ServiceHandle",
    "ExchangeSummary",
    "ExchangeDetail",
    "TimelineEvent",
    "ConnectionInfo",
    "TimingBreakdown",
    "SocketEntry",
    "IntrospectionError",
    "FeatureUnavailableError",
    "TransientProtocolError",
    "NetworkClient",
    "TrafficStore",
    "Availability",
    "DetailTab",
    "MonitorConfig",
    "CaptureLoop",
    "CaptureHandles",
    "CaptureState",
    "DetailFetcher",
    "SessionRegistry",
    "CommandBinder",
    "UpdateDispatcher",
]

__version__ = "0.1.0-dev"
