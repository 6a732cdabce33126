"""Failure taxonomy for introspection calls."""

from __future__ import annotations

from typing import Optional


METHOD_NOT_FOUND_CODE = -32601
EXTENSION_NOT_AVAILABLE_CODE = 113


class IntrospectionError(RuntimeError):
    """Base class for failed introspection calls."""


class FeatureUnavailableError(IntrospectionError):
    """The observed process does not register the requested extension.

    Typically a release build. Not recoverable for the lifetime of the
    process, so callers must not retry.
    """


class TransientProtocolError(IntrospectionError):
    """A single call failed for any other reason; retrying later may succeed."""


def is_extension_not_available(code: Optional[int], message: str = "") -> bool:
    if code in (METHOD_NOT_FOUND_CODE, EXTENSION_NOT_AVAILABLE_CODE):
        return True
    lowered = (message or "").lower()
    return "method not found" in lowered or "extension not available" in lowered
