"""Domain records for captured HTTP traffic.

Timestamps are microseconds since the Unix epoch as reported by the
observed process. Bodies are raw bytes; headers keep wire order and repeated
names (``[(name, [values...]), ...]``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


HeaderList = List[Tuple[str, List[str]]]


@dataclass(frozen=True)
class ExchangeSummary:
    """One captured exchange as known from the profile listing."""

    id: str
    method: str
    uri: str
    status_code: Optional[int] = None
    content_type: Optional[str] = None
    start_time_us: int = 0
    end_time_us: Optional[int] = None
    request_content_length: Optional[int] = None
    response_content_length: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.end_time_us is None and self.status_code is None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time_us is None:
            return None
        return (self.end_time_us - self.start_time_us) / 1000.0

    @property
    def is_error(self) -> bool:
        return self.error is not None or (self.status_code is not None and self.status_code >= 400)

    def short_uri(self) -> str:
        """Path and query of the URI, without scheme and authority."""
        for scheme in ("https://", "http://"):
            if self.uri.startswith(scheme):
                rest = self.uri[len(scheme):]
                slash = rest.find("/")
                if slash >= 0:
                    return rest[slash:]
                break
        return self.uri

    def response_size_display(self) -> Optional[str]:
        if self.response_content_length is None or self.response_content_length < 0:
            return None
        return format_bytes(self.response_content_length)


@dataclass(frozen=True)
class TimelineEvent:
    event: str
    timestamp_us: int


@dataclass(frozen=True)
class ConnectionInfo:
    local_port: Optional[int] = None
    remote_address: Optional[str] = None
    remote_port: Optional[int] = None


@dataclass(frozen=True)
class TimingBreakdown:
    total_ms: float = 0.0
    connection_ms: Optional[float] = None
    waiting_ms: Optional[float] = None
    receiving_ms: Optional[float] = None

    @classmethod
    def from_events(cls, events: List[TimelineEvent], summary: ExchangeSummary) -> "TimingBreakdown":
        connection_ts = _first_timestamp(events, "connection")
        response_ts = _first_timestamp(events, "response")
        start = summary.start_time_us

        connection_ms = None
        if connection_ts is not None:
            connection_ms = (connection_ts - start) / 1000.0
        waiting_ms = None
        if response_ts is not None:
            base = connection_ts if connection_ts is not None else start
            waiting_ms = (response_ts - base) / 1000.0
        receiving_ms = None
        if response_ts is not None and summary.end_time_us is not None:
            receiving_ms = (summary.end_time_us - response_ts) / 1000.0
        return cls(
            total_ms=summary.duration_ms or 0.0,
            connection_ms=connection_ms,
            waiting_ms=waiting_ms,
            receiving_ms=receiving_ms,
        )


@dataclass(frozen=True)
class ExchangeDetail:
    """Full record for one exchange, fetched on demand."""

    summary: ExchangeSummary
    request_headers: HeaderList = field(default_factory=list)
    response_headers: HeaderList = field(default_factory=list)
    request_body: bytes = b""
    response_body: bytes = b""
    events: List[TimelineEvent] = field(default_factory=list)
    connection: Optional[ConnectionInfo] = None

    @property
    def id(self) -> str:
        return self.summary.id

    def request_body_text(self) -> Optional[str]:
        return _decode_text(self.request_body)

    def response_body_text(self) -> Optional[str]:
        return _decode_text(self.response_body)

    def timing(self) -> TimingBreakdown:
        # Derived on every call so it can never drift from ``events``.
        return TimingBreakdown.from_events(self.events, self.summary)


@dataclass(frozen=True)
class SocketEntry:
    id: str
    address: str = ""
    port: int = 0
    socket_type: str = "tcp"
    start_time_us: int = 0
    end_time_us: Optional[int] = None
    read_bytes: int = 0
    write_bytes: int = 0


def _first_timestamp(events: List[TimelineEvent], needle: str) -> Optional[int]:
    for event in events:
        if needle in event.event:
            return event.timestamp_us
    return None


def _decode_text(body: bytes) -> Optional[str]:
    if not body:
        return None
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        return None


def format_bytes(count: int) -> str:
    if count < 1024:
        return f"{count} B"
    if count < 1024 * 1024:
        return f"{count / 1024:.1f} KB"
    return f"{count / (1024 * 1024):.1f} MB"


def format_duration_ms(ms: float) -> str:
    if ms < 1.0:
        return f"{ms * 1000:.0f}us"
    if ms < 1000.0:
        return f"{ms:.0f}ms"
    return f"{ms / 1000:.2f}s"
