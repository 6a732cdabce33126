import logging
import threading
from unittest.mock import MagicMock

from python.netprobe.capture import CaptureHandles, CaptureLoop, CaptureState, ClearRemoteTask, DetailFetcher
from python.netprobe.errors import FeatureUnavailableError, TransientProtocolError
from python.netprobe.messages import (
    CaptureAlive,
    CaptureStarted,
    CaptureUnavailable,
    DetailFailed,
    DetailReceived,
    RemoteCleared,
    SocketsReceived,
    SummariesReceived,
)
from python.netprobe.models import ExchangeDetail, ExchangeSummary, SocketEntry
from python.netprobe.profile import HttpProfile


def _summary(request_id):
    return ExchangeSummary(id=request_id, method="GET", uri="https://example.com/")


def _loop(client, posted, **kwargs):
    kwargs.setdefault("socket_capture", False)
    return CaptureLoop(client, "s1", posted.append, **kwargs)


def test_unavailable_on_enable_reports_once_and_exits():
    client = MagicMock()
    client.enable_capture.side_effect = FeatureUnavailableError("not registered")
    posted = []
    loop = _loop(client, posted)
    loop.run()
    assert [type(message) for message in posted] == [CaptureStarted, CaptureUnavailable]
    assert loop.state is CaptureState.UNAVAILABLE
    client.enable_capture.assert_called_once_with(True)
    client.fetch_summaries.assert_not_called()


def test_run_posts_started_then_batches_and_stops_without_final_fetch():
    client = MagicMock()
    posted = []
    loop = _loop(client, posted)

    def fetch(since):
        loop.handles.stop_event.set()
        return HttpProfile(watermark=5, summaries=[_summary("1")])

    client.fetch_summaries.side_effect = fetch
    loop.run()
    assert isinstance(posted[0], CaptureStarted)
    assert posted[0].handles is loop.handles
    assert posted[1] == CaptureAlive("s1")
    assert isinstance(posted[2], SummariesReceived)
    assert posted[2].watermark == 5
    assert [summary.id for summary in posted[2].summaries] == ["1"]
    assert client.fetch_summaries.call_count == 1
    assert loop.state is CaptureState.STOPPED


def test_stop_before_enable_exits_immediately():
    client = MagicMock()
    posted = []
    loop = _loop(client, posted)
    loop.handles.stop_event.set()
    loop.run()
    assert [type(message) for message in posted] == [CaptureStarted]
    client.enable_capture.assert_not_called()


def test_empty_polls_advance_watermark_and_report_alive():
    client = MagicMock()
    client.fetch_summaries.return_value = HttpProfile(watermark=10, summaries=[])
    posted = []
    loop = _loop(client, posted)
    assert loop.tick()
    assert loop.watermark == 10
    assert posted == [CaptureAlive("s1", 10)]
    client.fetch_summaries.return_value = HttpProfile(watermark=None, summaries=[])
    loop.tick()
    client.fetch_summaries.assert_called_with(10)
    assert loop.watermark == 10


def test_transient_tick_failure_keeps_polling():
    client = MagicMock()
    client.fetch_summaries.side_effect = [
        TransientProtocolError("timeout"),
        HttpProfile(watermark=3, summaries=[_summary("1")]),
    ]
    posted = []
    loop = _loop(client, posted)
    assert loop.tick()
    assert posted == []
    assert loop.tick()
    assert isinstance(posted[0], SummariesReceived)


def test_unavailable_while_polling_terminates():
    client = MagicMock()
    client.fetch_summaries.side_effect = FeatureUnavailableError("gone")
    posted = []
    loop = _loop(client, posted)
    assert not loop.tick()
    assert isinstance(posted[0], CaptureUnavailable)
    assert loop.state is CaptureState.UNAVAILABLE


def test_rewind_forces_full_fetch():
    client = MagicMock()
    client.fetch_summaries.return_value = HttpProfile(watermark=10, summaries=[])
    loop = _loop(client, [])
    loop.tick()
    loop.handles.rewind()
    loop.tick()
    assert client.fetch_summaries.call_args_list[-1].args == (None,)
    assert not loop.handles.rewind_event.is_set()


def test_transient_enable_failure_still_polls():
    client = MagicMock()
    client.enable_capture.side_effect = TransientProtocolError("slow")
    posted = []
    loop = _loop(client, posted)

    def fetch(since):
        loop.handles.stop_event.set()
        return HttpProfile(watermark=1, summaries=[])

    client.fetch_summaries.side_effect = fetch
    loop.run()
    assert client.fetch_summaries.call_count == 1
    assert loop.state is CaptureState.STOPPED
    assert [type(message) for message in posted] == [CaptureStarted, CaptureAlive]


def test_socket_profile_posted_only_when_changed():
    client = MagicMock()
    client.set_socket_capture.return_value = True
    client.fetch_summaries.return_value = HttpProfile(watermark=1, summaries=[])
    client.fetch_sockets.return_value = [SocketEntry(id="s", address="10.0.0.1", port=443)]
    posted = []
    loop = _loop(client, posted, socket_capture=True)
    assert loop._enable()
    loop.tick()
    loop.tick()
    sockets = [message for message in posted if isinstance(message, SocketsReceived)]
    assert len(sockets) == 1
    assert sockets[0].sockets[0].port == 443


def test_socket_capture_failure_is_best_effort():
    client = MagicMock()
    client.set_socket_capture.side_effect = FeatureUnavailableError("no sockets")
    client.fetch_summaries.return_value = HttpProfile(watermark=1, summaries=[])
    loop = _loop(client, [], socket_capture=True)
    assert loop._enable()
    loop.tick()
    client.fetch_sockets.assert_not_called()


def test_interval_is_clamped():
    assert _loop(MagicMock(), [], interval_s=0.1).interval_s == 0.5
    assert _loop(MagicMock(), [], interval_s=2).interval_s == 2.0


def test_background_loop_stops_on_signal():
    client = MagicMock()
    polled = threading.Event()

    def fetch(since):
        polled.set()
        return HttpProfile(watermark=1, summaries=[])

    client.fetch_summaries.side_effect = fetch
    loop = _loop(client, [])
    handles = loop.start()
    assert polled.wait(1.0)
    assert handles.is_alive()
    handles.stop(join_timeout=1.0)
    assert not handles.is_alive()
    assert handles.stopped


def test_handles_without_thread():
    handles = CaptureHandles()
    assert not handles.is_alive()
    handles.stop(join_timeout=0.1)
    assert handles.stopped


def test_detail_fetcher_posts_result_or_failure():
    detail = ExchangeDetail(summary=_summary("7"))
    client = MagicMock()
    client.fetch_detail.return_value = detail
    posted = []
    DetailFetcher(client, "s1", "7", posted.append).run()
    assert posted == [DetailReceived("s1", "7", detail)]

    client.fetch_detail.side_effect = TransientProtocolError("rpc timeout")
    posted.clear()
    DetailFetcher(client, "s1", "7", posted.append).run()
    assert posted == [DetailFailed("s1", "7", "rpc timeout")]


def test_detail_fetcher_thread():
    client = MagicMock()
    client.fetch_detail.return_value = ExchangeDetail(summary=_summary("1"))
    posted = []
    DetailFetcher(client, "s1", "1", posted.append).start().join(timeout=1.0)
    assert isinstance(posted[0], DetailReceived)


def test_clear_remote_task_reports_completion():
    client = MagicMock()
    posted = []
    ClearRemoteTask(client, "s1", posted.append).run()
    client.clear_remote.assert_called_once_with()
    assert posted == [RemoteCleared("s1")]


def test_clear_remote_task_logs_failures(caplog):
    client = MagicMock()
    client.clear_remote.side_effect = TransientProtocolError("boom")
    posted = []
    with caplog.at_level(logging.WARNING, logger="python.netprobe.capture"):
        ClearRemoteTask(client, "s1", posted.append).run()
    assert "clearing remote profile" in caplog.text
    assert posted == []
