"""Typed wrappers around the ``ext.dart.io`` profiling extensions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import (
    FeatureUnavailableError,
    IntrospectionError,
    TransientProtocolError,
    is_extension_not_available,
)
from .models import ExchangeDetail, SocketEntry
from .profile import (
    HttpProfile,
    parse_bool_flag,
    parse_detail,
    parse_profile,
    parse_socket_profile,
)
from .service import ServiceHandle
from .transport import RpcError, TransportError


HTTP_ENABLE_TIMELINE_LOGGING = "ext.dart.io.httpEnableTimelineLogging"
GET_HTTP_PROFILE = "ext.dart.io.getHttpProfile"
GET_HTTP_PROFILE_REQUEST = "ext.dart.io.getHttpProfileRequest"
CLEAR_HTTP_PROFILE = "ext.dart.io.clearHttpProfile"
SOCKET_PROFILING_ENABLED = "ext.dart.io.socketProfilingEnabled"
GET_SOCKET_PROFILE = "ext.dart.io.getSocketProfile"

__all__ = [
    "NetworkClient",
    "IntrospectionError",
    "FeatureUnavailableError",
    "TransientProtocolError",
    "is_extension_not_available",
]


@dataclass
class NetworkClient:
    """Stateless client: every call goes straight to the borrowed handle."""

    handle: ServiceHandle

    def _call(self, method: str, args: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            return self.handle.call_extension(method, args)
        except RpcError as exc:
            if is_extension_not_available(exc.code, exc.message):
                raise FeatureUnavailableError(f"{method} is not registered: {exc.message}") from exc
            raise TransientProtocolError(f"{method} failed: {exc}") from exc
        except TransportError as exc:
            raise TransientProtocolError(f"{method} failed: {exc}") from exc

    def enable_capture(self, enabled: bool) -> bool:
        result = self._call(HTTP_ENABLE_TIMELINE_LOGGING, {"enabled": _flag(enabled)})
        return parse_bool_flag(result)

    def fetch_summaries(self, since: Optional[int] = None) -> HttpProfile:
        args: Dict[str, str] = {}
        if since is not None:
            args["updatedSince"] = str(since)
        return parse_profile(self._call(GET_HTTP_PROFILE, args or None))

    def fetch_detail(self, request_id: str) -> ExchangeDetail:
        return parse_detail(self._call(GET_HTTP_PROFILE_REQUEST, {"id": request_id}))

    def clear_remote(self) -> None:
        self._call(CLEAR_HTTP_PROFILE)

    def set_socket_capture(self, enabled: bool) -> bool:
        result = self._call(SOCKET_PROFILING_ENABLED, {"enabled": _flag(enabled)})
        return parse_bool_flag(result)

    def fetch_sockets(self) -> List[SocketEntry]:
        return parse_socket_profile(self._call(GET_SOCKET_PROFILE))


def _flag(enabled: bool) -> str:
    return "true" if enabled else "false"
