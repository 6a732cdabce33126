"""netprobe CLI entry point: attach to one process and stream its HTTP traffic."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from .binder import SessionRegistry
from .config import MonitorConfig
from .dispatcher import UpdateDispatcher
from .messages import FilterChanged, Message, OpenPanel, SessionAttached, SummariesReceived
from .models import ExchangeSummary, format_duration_ms
from .service import ServiceHandle
from .store import Availability
from .transport import TransportConfig, TransportError

LOG = logging.getLogger("netprobe.cli")

SESSION_ID = "main"

EXIT_OK = 0
EXIT_CONNECT_FAILED = 1
EXIT_UNAVAILABLE = 2

UNAVAILABLE_TEXT = (
    "HTTP profiling is not available in the observed process. "
    "It is only registered in debug/profile builds."
)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stream HTTP traffic captured from a running process")
    parser.add_argument("--host", default="127.0.0.1", help="Service host")
    parser.add_argument("--port", type=int, default=8181, help="Service port")
    parser.add_argument("--interval", type=float, help="Poll interval in seconds (minimum 0.5)")
    parser.add_argument("--max-entries", type=int, help="History capacity")
    parser.add_argument("--filter", default="", help="Only show exchanges matching this text")
    parser.add_argument("--json", action="store_true", help="Emit one JSON object per exchange")
    parser.add_argument("--duration", type=float, help="Stop after this many seconds")
    parser.add_argument("--retries", type=int, default=5, help="Connection attempts before giving up")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("NETPROBE_LOG", "WARNING"),
        help="Logging level (default WARNING)",
    )
    return parser


def summary_to_dict(summary: ExchangeSummary) -> Dict[str, Any]:
    payload = asdict(summary)
    payload["pending"] = summary.is_pending
    payload["duration_ms"] = summary.duration_ms
    return payload


def render_line(summary: ExchangeSummary) -> str:
    if summary.status_code is not None:
        status = str(summary.status_code)
    elif summary.error is not None:
        status = "ERR"
    else:
        status = "..."
    duration = summary.duration_ms
    elapsed = format_duration_ms(duration) if duration is not None else "-"
    size = summary.response_size_display() or "-"
    return f"{summary.method:<7} {status:>3} {elapsed:>8} {size:>9}  {summary.short_uri()}"


class ExchangePrinter:
    """Dispatcher subscriber that prints new or changed exchanges."""

    def __init__(self, dispatcher: UpdateDispatcher, session_id: str, *, json_output: bool = False, stream=None) -> None:
        self.dispatcher = dispatcher
        self.session_id = session_id
        self.json_output = json_output
        self.stream = stream
        self._printed: Dict[str, ExchangeSummary] = {}

    def __call__(self, message: Message) -> None:
        if not isinstance(message, SummariesReceived) or message.session_id != self.session_id:
            return
        store = self.dispatcher.store(self.session_id)
        if store is None:
            return
        known = {entry.id for entry in store.entries}
        for summary in message.summaries:
            if summary.id not in known or not store.matches(summary):
                continue
            if self._printed.get(summary.id) == summary:
                continue
            self._printed[summary.id] = summary
            self._emit(summary)
        if len(self._printed) > len(known):
            self._printed = {key: value for key, value in self._printed.items() if key in known}

    def _emit(self, summary: ExchangeSummary) -> None:
        if self.json_output:
            line = json.dumps(summary_to_dict(summary), sort_keys=True)
        else:
            line = render_line(summary)
        print(line, file=self.stream or sys.stdout, flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    config = MonitorConfig.from_env()
    if args.interval is not None:
        config.poll_interval_s = args.interval
    if args.max_entries is not None:
        if args.max_entries < 1:
            parser.error("--max-entries must be at least 1")
        config.max_entries = args.max_entries

    handle = ServiceHandle(
        transport_config=TransportConfig(host=args.host, port=args.port, max_retries=max(1, args.retries)),
    )
    try:
        isolate_id = handle.open()
    except TransportError as exc:
        print(f"error: cannot attach to {args.host}:{args.port}: {exc}", file=sys.stderr)
        handle.close()
        return EXIT_CONNECT_FAILED
    LOG.info("attached to %s:%s isolate %s", args.host, args.port, isolate_id)

    registry = SessionRegistry()
    registry.attach(SESSION_ID, handle)
    dispatcher = UpdateDispatcher(registry, config=config)
    dispatcher.subscribe(ExchangePrinter(dispatcher, SESSION_ID, json_output=args.json))
    dispatcher.post(SessionAttached(SESSION_ID))
    if args.filter:
        dispatcher.post(FilterChanged(SESSION_ID, args.filter))
    dispatcher.post(OpenPanel(SESSION_ID))

    deadline = time.monotonic() + args.duration if args.duration is not None else None
    try:
        while True:
            dispatcher.pump(timeout=0.1)
            store = dispatcher.store(SESSION_ID)
            if store is not None and store.availability is Availability.UNAVAILABLE:
                print(UNAVAILABLE_TEXT, file=sys.stderr)
                return EXIT_UNAVAILABLE
            if deadline is not None and time.monotonic() >= deadline:
                break
    except KeyboardInterrupt:
        print()
    finally:
        dispatcher.shutdown()
        registry.detach(SESSION_ID)
        handle.close()
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
