"""
Pytest configuration and fixtures for netprobe tests.
"""
import pytest

from python.netprobe.models import ExchangeSummary
from python.tests.netprobe_stubs import DummyServiceServer


@pytest.fixture
def service_server():
    servers = []

    def factory(handlers=None, **kwargs):
        server = DummyServiceServer(handlers, **kwargs)
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()


@pytest.fixture
def make_summary():
    def factory(request_id, method="GET", uri="https://example.com/api", **kwargs):
        return ExchangeSummary(id=str(request_id), method=method, uri=uri, **kwargs)

    return factory
