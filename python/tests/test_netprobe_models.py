from python.netprobe.models import (
    ExchangeDetail,
    ExchangeSummary,
    TimelineEvent,
    format_bytes,
    format_duration_ms,
)


def test_summary_pending_until_status_or_end_time():
    pending = ExchangeSummary(id="1", method="GET", uri="https://a.test/")
    assert pending.is_pending
    assert pending.duration_ms is None
    assert not ExchangeSummary(id="1", method="GET", uri="/", status_code=200).is_pending
    assert not ExchangeSummary(id="1", method="GET", uri="/", end_time_us=5).is_pending


def test_summary_duration_and_error_flags():
    summary = ExchangeSummary(
        id="1",
        method="GET",
        uri="/",
        status_code=404,
        start_time_us=1_000_000,
        end_time_us=1_250_000,
    )
    assert summary.duration_ms == 250.0
    assert summary.is_error
    failed = ExchangeSummary(id="2", method="GET", uri="/", error="SocketException")
    assert failed.is_error
    assert not ExchangeSummary(id="3", method="GET", uri="/", status_code=204).is_error


def test_short_uri_strips_scheme_and_authority():
    summary = ExchangeSummary(id="1", method="GET", uri="https://api.example.com/v1/users?page=2")
    assert summary.short_uri() == "/v1/users?page=2"
    assert ExchangeSummary(id="2", method="GET", uri="http://example.com").short_uri() == "http://example.com"
    assert ExchangeSummary(id="3", method="GET", uri="/relative").short_uri() == "/relative"


def test_response_size_display():
    assert ExchangeSummary(id="1", method="GET", uri="/").response_size_display() is None
    sized = ExchangeSummary(id="1", method="GET", uri="/", response_content_length=2048)
    assert sized.response_size_display() == "2.0 KB"


def test_format_helpers():
    assert format_bytes(512) == "512 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(int(2.5 * 1024 * 1024)) == "2.5 MB"
    assert format_duration_ms(0.5) == "500us"
    assert format_duration_ms(42.0) == "42ms"
    assert format_duration_ms(1500.0) == "1.50s"


def test_timing_breakdown_is_derived_from_events():
    summary = ExchangeSummary(
        id="1",
        method="GET",
        uri="/",
        status_code=200,
        start_time_us=0,
        end_time_us=100_000,
    )
    detail = ExchangeDetail(
        summary=summary,
        events=[
            TimelineEvent("connection established", 20_000),
            TimelineEvent("response started", 70_000),
        ],
    )
    timing = detail.timing()
    assert timing.total_ms == 100.0
    assert timing.connection_ms == 20.0
    assert timing.waiting_ms == 50.0
    assert timing.receiving_ms == 30.0

    detail.events.clear()
    bare = detail.timing()
    assert bare.connection_ms is None
    assert bare.waiting_ms is None
    assert bare.receiving_ms is None
    assert bare.total_ms == 100.0


def test_body_text_requires_utf8():
    summary = ExchangeSummary(id="1", method="POST", uri="/")
    detail = ExchangeDetail(summary=summary, request_body=b"hi", response_body=b"\xff\xfe")
    assert detail.id == "1"
    assert detail.request_body_text() == "hi"
    assert detail.response_body_text() is None
    assert ExchangeDetail(summary=summary).request_body_text() is None
