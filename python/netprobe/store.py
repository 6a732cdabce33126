"""Per-session traffic history, selection and filter state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .models import ExchangeDetail, ExchangeSummary, SocketEntry


DEFAULT_MAX_ENTRIES = 500
PAGE_STEP = 10


class Availability(str, Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class DetailTab(str, Enum):
    GENERAL = "general"
    HEADERS = "headers"
    REQUEST_BODY = "request_body"
    RESPONSE_BODY = "response_body"
    TIMING = "timing"


@dataclass
class TrafficStore:
    """Bounded exchange history for one observed process.

    ``selected_index`` addresses the *filtered* view. ``selected_detail`` is
    only ever the detail of the entry at that index.
    """

    max_entries: int = DEFAULT_MAX_ENTRIES
    auto_record: bool = True
    entries: List[ExchangeSummary] = field(default_factory=list)
    selected_index: Optional[int] = None
    selected_detail: Optional[ExchangeDetail] = None
    fetching_detail: bool = False
    capture_enabled: bool = True
    filter: str = ""
    detail_tab: DetailTab = DetailTab.GENERAL
    watermark: Optional[int] = None
    scroll_offset: int = 0
    availability: Availability = Availability.UNKNOWN
    last_error: Optional[str] = None
    sockets: List[SocketEntry] = field(default_factory=list)
    last_update_at: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.capture_enabled = self.auto_record

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def merge_summaries(self, batch: List[ExchangeSummary]) -> None:
        """Upsert ``batch`` by id, then evict oldest entries over capacity.

        Under a filter an upsert can move entries into or out of the view, so
        the selection is re-anchored to the selected id before eviction runs.
        """
        anchor = self.selected_summary() if self.filter else None
        positions = {entry.id: idx for idx, entry in enumerate(self.entries)}
        for summary in batch:
            idx = positions.get(summary.id)
            if idx is not None:
                self.entries[idx] = summary
            else:
                positions[summary.id] = len(self.entries)
                self.entries.append(summary)
        if anchor is not None:
            self._reanchor_selection(anchor.id)
        while len(self.entries) > self.max_entries:
            self._evict_oldest()

    def _reanchor_selection(self, entry_id: str) -> None:
        for idx, entry in enumerate(self.filtered_view()):
            if entry.id == entry_id:
                self.selected_index = idx
                return
        self.selected_index = None
        self.selected_detail = None
        self.fetching_detail = False

    def _evict_oldest(self) -> None:
        evicted = self.entries.pop(0)
        if self.matches(evicted) and self.selected_index is not None:
            if self.selected_index == 0:
                self.selected_index = None
                self.selected_detail = None
                self.fetching_detail = False
            else:
                self.selected_index -= 1
        if self.scroll_offset > 0:
            self.scroll_offset -= 1

    def record_poll(self, watermark: Optional[int], batch: List[ExchangeSummary], now: Optional[float] = None) -> None:
        """Apply one poll result. The cursor advances even while paused."""
        if watermark is not None:
            self.watermark = watermark
        self.availability = Availability.AVAILABLE
        if now is not None:
            self.last_update_at = now
        if self.capture_enabled:
            self.merge_summaries(batch)

    def is_fresh(self, now: float, max_age_s: float) -> bool:
        if self.last_update_at is None:
            return False
        return (now - self.last_update_at) <= max_age_s

    # ------------------------------------------------------------------
    # Filtered view
    # ------------------------------------------------------------------
    def matches(self, entry: ExchangeSummary) -> bool:
        if not self.filter:
            return True
        needle = self.filter.lower()
        if needle in entry.method.lower() or needle in entry.uri.lower():
            return True
        if entry.status_code is not None and needle in str(entry.status_code):
            return True
        return entry.content_type is not None and needle in entry.content_type.lower()

    def filtered_view(self) -> List[ExchangeSummary]:
        if not self.filter:
            return list(self.entries)
        return [entry for entry in self.entries if self.matches(entry)]

    def filtered_count(self) -> int:
        return len(self.filtered_view())

    def set_filter(self, text: str) -> None:
        self.filter = text
        self.selected_index = None
        self.selected_detail = None
        self.fetching_detail = False
        self.scroll_offset = 0

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def selected_summary(self) -> Optional[ExchangeSummary]:
        if self.selected_index is None:
            return None
        view = self.filtered_view()
        if 0 <= self.selected_index < len(view):
            return view[self.selected_index]
        return None

    def select_previous(self) -> None:
        count = self.filtered_count()
        if count == 0:
            return
        if self.selected_index is None or self.selected_index <= 0:
            self.selected_index = 0
        else:
            self.selected_index = min(self.selected_index - 1, count - 1)
        self._invalidate_detail()

    def select_next(self) -> None:
        count = self.filtered_count()
        if count == 0:
            return
        if self.selected_index is None:
            self.selected_index = 0
        else:
            self.selected_index = min(self.selected_index + 1, count - 1)
        self._invalidate_detail()

    def select_page_up(self, step: int = PAGE_STEP) -> None:
        for _ in range(step):
            self.select_previous()

    def select_page_down(self, step: int = PAGE_STEP) -> None:
        for _ in range(step):
            self.select_next()

    def select_by_index(self, index: Optional[int]) -> None:
        if index is None:
            self.selected_index = None
        else:
            count = self.filtered_count()
            if count == 0:
                self.selected_index = None
            else:
                self.selected_index = max(0, min(index, count - 1))
        self._invalidate_detail()

    def _invalidate_detail(self) -> None:
        self.selected_detail = None
        self.fetching_detail = False
        self.last_error = None

    # ------------------------------------------------------------------
    # Detail results
    # ------------------------------------------------------------------
    def begin_detail_fetch(self) -> Optional[str]:
        """Mark the selection as loading; returns the id to fetch."""
        summary = self.selected_summary()
        if summary is None:
            return None
        self.fetching_detail = True
        self.last_error = None
        return summary.id

    def apply_detail(self, detail: ExchangeDetail) -> bool:
        selected = self.selected_summary()
        if selected is None or selected.id != detail.id:
            return False
        self.selected_detail = detail
        self.fetching_detail = False
        self.last_error = None
        return True

    def apply_detail_failure(self, request_id: str, error: str) -> bool:
        selected = self.selected_summary()
        if selected is None or selected.id != request_id:
            return False
        self.fetching_detail = False
        self.last_error = error
        return True

    # ------------------------------------------------------------------
    # Bulk helpers
    # ------------------------------------------------------------------
    def mark_unavailable(self) -> None:
        self.availability = Availability.UNAVAILABLE
        self.capture_enabled = False

    def clear(self) -> None:
        self.entries.clear()
        self.selected_index = None
        self.selected_detail = None
        self.fetching_detail = False
        self.watermark = None
        self.scroll_offset = 0

    def reset(self) -> None:
        self.clear()
        self.capture_enabled = self.auto_record
        self.filter = ""
        self.detail_tab = DetailTab.GENERAL
        self.availability = Availability.UNKNOWN
        self.last_error = None
        self.sockets = []
        self.last_update_at = None
