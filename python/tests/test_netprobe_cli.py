import json
import socket

import pytest

from python.netprobe import cli
from python.netprobe.client import GET_HTTP_PROFILE, HTTP_ENABLE_TIMELINE_LOGGING
from python.netprobe.config import MonitorConfig
from python.netprobe.models import ExchangeSummary
from python.tests.netprobe_stubs import wire_record


def _profile_handlers(records):
    return {
        HTTP_ENABLE_TIMELINE_LOGGING: lambda params: {"enabled": "true"},
        GET_HTTP_PROFILE: lambda params: {"timestamp": 2_000_000, "requests": records},
    }


def _free_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_render_line_states():
    done = ExchangeSummary(
        id="1",
        method="GET",
        uri="https://example.com/api/users",
        status_code=200,
        start_time_us=1_000_000,
        end_time_us=1_042_000,
        response_content_length=12,
    )
    assert cli.render_line(done) == "GET     200     42ms      12 B  /api/users"
    pending = ExchangeSummary(id="2", method="POST", uri="https://example.com/login")
    assert cli.render_line(pending).split()[:3] == ["POST", "...", "-"]
    failed = ExchangeSummary(id="3", method="GET", uri="/x", error="refused", end_time_us=5)
    assert " ERR " in cli.render_line(failed)


def test_summary_to_dict_includes_derived_fields():
    payload = cli.summary_to_dict(ExchangeSummary(id="1", method="GET", uri="/"))
    assert payload["pending"] is True
    assert payload["duration_ms"] is None
    assert payload["id"] == "1"


def test_cli_streams_exchanges(service_server, capsys):
    server = service_server(
        _profile_handlers([wire_record("1", "GET", "https://example.com/api/users", status=200, end=1_042_000)])
    )
    code = cli.main(["--port", str(server.port), "--duration", "1.0", "--interval", "0.5"])
    assert code == cli.EXIT_OK
    out_lines = capsys.readouterr().out.strip().splitlines()
    assert out_lines == ["GET     200     42ms      12 B  /api/users"]
    assert server.params_for(HTTP_ENABLE_TIMELINE_LOGGING)[0]["enabled"] == "true"
    profile_calls = server.params_for(GET_HTTP_PROFILE)
    assert "updatedSince" not in profile_calls[0]
    if len(profile_calls) > 1:
        assert profile_calls[1]["updatedSince"] == "2000000"


def test_cli_json_with_filter(service_server, capsys):
    records = [
        wire_record("1", "GET", "https://example.com/a", status=200, end=1_100_000),
        wire_record("2", "POST", "https://example.com/b", status=201, end=1_100_000),
    ]
    server = service_server(_profile_handlers(records))
    code = cli.main(["--port", str(server.port), "--duration", "0.6", "--json", "--filter", "post"])
    assert code == cli.EXIT_OK
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["id"] == "2"
    assert payload["status_code"] == 201
    assert payload["pending"] is False


def test_cli_reports_unavailable_capture(service_server, capsys):
    server = service_server()
    code = cli.main(["--port", str(server.port), "--duration", "5"])
    assert code == cli.EXIT_UNAVAILABLE
    assert "not available" in capsys.readouterr().err


def test_cli_connection_failure(capsys):
    code = cli.main(["--port", str(_free_port()), "--retries", "1"])
    assert code == cli.EXIT_CONNECT_FAILED
    assert "cannot attach" in capsys.readouterr().err


def test_cli_rejects_zero_capacity():
    with pytest.raises(SystemExit):
        cli.main(["--max-entries", "0"])


def test_monitor_config_from_env():
    config = MonitorConfig.from_env(
        {"NETPROBE_MAX_ENTRIES": "50", "NETPROBE_POLL_INTERVAL": "0.1", "NETPROBE_STALE_AFTER": "junk"}
    )
    assert config.max_entries == 50
    assert config.poll_interval_s == 0.1
    assert config.effective_interval_s == 0.5
    assert config.stale_after_s == 30.0
    assert MonitorConfig.from_env({}).max_entries == 500
