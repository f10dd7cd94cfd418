"""pytest fixtures for htmock.

``htmock`` gives each test a running MockServer and ``htmock_reporter`` the
sink to pass to its assertions. Failures reported to the sink are collected
and turned into a single test failure at teardown.
"""
import pytest

from .mock_server import MockServer
from .reporting import FailureCollector


@pytest.fixture
def htmock_reporter(request):
    collector = FailureCollector(request.node.nodeid)
    yield collector
    if collector.failed:
        pytest.fail(collector.report(), pytrace=False)


@pytest.fixture
def htmock():
    server = MockServer()
    yield server
    server.close()
