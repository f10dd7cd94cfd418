import pytest
import requests


@pytest.fixture
def fetch(htmock):
    """GET a path on the mock server, returning (body, status)"""

    def _fetch(path, method="GET", **kwargs):
        resp = requests.request(method, htmock.url() + path, timeout=5, **kwargs)
        return resp.text, resp.status_code

    return _fetch
