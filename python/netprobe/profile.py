"""Tolerant parsers for HTTP/socket profile payloads.

Every record is parsed on its own: a record missing a required field is
dropped from its batch, and every optional field falls back to "unknown"
instead of failing the record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import TransientProtocolError
from .models import (
    ConnectionInfo,
    ExchangeDetail,
    ExchangeSummary,
    HeaderList,
    SocketEntry,
    TimelineEvent,
)


logger = logging.getLogger(__name__)


@dataclass
class HttpProfile:
    """One ``getHttpProfile`` answer: the new watermark plus the batch."""

    watermark: Optional[int]
    summaries: List[ExchangeSummary] = field(default_factory=list)


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_str(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    return None


def _non_negative(value: Any) -> Optional[int]:
    number = _to_int(value)
    if number is None or number < 0:
        return None
    return number


def _port(value: Any) -> Optional[int]:
    number = _to_int(value)
    if number is None or not 0 <= number <= 0xFFFF:
        return None
    return number


def _section(record: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = record.get(key)
    return value if isinstance(value, dict) else {}


def _identifier(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value or None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def _header_value(headers: Any, name: str) -> Optional[str]:
    if not isinstance(headers, dict):
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() != wanted:
            continue
        if isinstance(value, list):
            for item in value:
                if isinstance(item, str):
                    return item
            return None
        return _to_str(value)
    return None


def parse_summary(record: Any) -> Optional[ExchangeSummary]:
    """Return the summary for one wire record, or None when it is unusable."""
    if not isinstance(record, dict):
        return None
    request_id = _identifier(record.get("id"))
    method = _to_str(record.get("method"))
    uri = _to_str(record.get("uri"))
    if not request_id or not method or uri is None:
        return None

    request = _section(record, "request")
    response = _section(record, "response")
    status = _to_int(response.get("statusCode"))
    if status is not None and not 0 <= status <= 999:
        status = None
    error = _to_str(request.get("error")) or _to_str(response.get("error"))
    return ExchangeSummary(
        id=request_id,
        method=method,
        uri=uri,
        status_code=status,
        content_type=_header_value(response.get("headers"), "content-type"),
        start_time_us=_to_int(record.get("startTime")) or 0,
        end_time_us=_to_int(record.get("endTime")),
        request_content_length=_non_negative(request.get("contentLength")),
        response_content_length=_non_negative(response.get("contentLength")),
        error=error,
    )


def parse_profile(result: Any) -> HttpProfile:
    if not isinstance(result, dict):
        raise TransientProtocolError("getHttpProfile returned a non-object payload")
    watermark = _to_int(result.get("timestamp"))
    records = result.get("requests")
    summaries: List[ExchangeSummary] = []
    skipped = 0
    if isinstance(records, list):
        for record in records:
            summary = parse_summary(record)
            if summary is None:
                skipped += 1
                continue
            summaries.append(summary)
    if skipped:
        logger.debug("skipped %d malformed profile record(s)", skipped)
    return HttpProfile(watermark=watermark, summaries=summaries)


def parse_headers(value: Any) -> HeaderList:
    if not isinstance(value, dict):
        return []
    headers: HeaderList = []
    for name, raw in value.items():
        if isinstance(raw, list):
            values = [item if isinstance(item, str) else str(item) for item in raw if item is not None]
        elif raw is None:
            values = []
        else:
            values = [str(raw)]
        headers.append((str(name), values))
    return headers


def parse_body_bytes(value: Any) -> bytes:
    """Decode an element-wise byte array (``[104, 105]`` -> ``b"hi"``)."""
    if not isinstance(value, list):
        return b""
    out = bytearray()
    for item in value:
        number = _to_int(item)
        if number is None or not 0 <= number <= 0xFF:
            continue
        out.append(number)
    return bytes(out)


def parse_event(value: Any) -> Optional[TimelineEvent]:
    if not isinstance(value, dict):
        return None
    name = _to_str(value.get("event"))
    if name is None:
        return None
    return TimelineEvent(event=name, timestamp_us=_to_int(value.get("timestamp")) or 0)


def parse_connection_info(value: Any) -> Optional[ConnectionInfo]:
    if not isinstance(value, dict):
        return None
    return ConnectionInfo(
        local_port=_port(value.get("localPort")),
        remote_address=_to_str(value.get("remoteAddress")),
        remote_port=_port(value.get("remotePort")),
    )


def parse_detail(result: Any) -> ExchangeDetail:
    summary = parse_summary(result)
    if summary is None:
        raise TransientProtocolError("request detail is missing id, method or uri")
    request = _section(result, "request")
    response = _section(result, "response")
    raw_events = result.get("events")
    events: List[TimelineEvent] = []
    if isinstance(raw_events, list):
        for raw in raw_events:
            event = parse_event(raw)
            if event is not None:
                events.append(event)
    connection = parse_connection_info(request.get("connectionInfo"))
    if connection is None:
        connection = parse_connection_info(result.get("connectionInfo"))
    return ExchangeDetail(
        summary=summary,
        request_headers=parse_headers(request.get("headers")),
        response_headers=parse_headers(response.get("headers")),
        request_body=parse_body_bytes(result.get("requestBody")),
        response_body=parse_body_bytes(result.get("responseBody")),
        events=events,
        connection=connection,
    )


def parse_bool_flag(result: Any, key: str = "enabled") -> bool:
    """Read a toggle answer that may be a JSON bool or its string form."""
    value = result.get(key) if isinstance(result, dict) else None
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise TransientProtocolError(f"missing '{key}' flag in toggle response")


def parse_socket_entry(value: Any) -> Optional[SocketEntry]:
    if not isinstance(value, dict):
        return None
    socket_id = _identifier(value.get("id"))
    if not socket_id:
        return None
    return SocketEntry(
        id=socket_id,
        address=_to_str(value.get("address")) or "",
        port=_port(value.get("port")) or 0,
        socket_type=_to_str(value.get("socketType")) or "tcp",
        start_time_us=_to_int(value.get("startTime")) or 0,
        end_time_us=_to_int(value.get("endTime")),
        read_bytes=_non_negative(value.get("readBytes")) or 0,
        write_bytes=_non_negative(value.get("writeBytes")) or 0,
    )


def parse_socket_profile(result: Any) -> List[SocketEntry]:
    if not isinstance(result, dict):
        return []
    records = result.get("sockets")
    if not isinstance(records, list):
        return []
    entries: List[SocketEntry] = []
    for record in records:
        entry = parse_socket_entry(record)
        if entry is not None:
            entries.append(entry)
    return entries
