"""Shared fixtures for the relaytube test suite.

No test touches the network: HTTP is stubbed at the ``requests.Session``
boundary and the registry clock is injected.
"""

from __future__ import annotations

import json
from typing import Callable, List, Optional

import pytest
import requests

from app import create_app
from instance_registry import InstanceRegistry

PIPED = [
    "https://piped-a.example",
    "https://piped-b.example",
    "https://piped-c.example",
    "https://piped-d.example",
    "https://piped-e.example",
]
INVIDIOUS = [
    "https://inv-a.example",
    "https://inv-b.example",
    "https://inv-c.example",
]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_response(status: int = 200, payload=None, content: Optional[bytes] = None, url: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = url
    response.encoding = "utf-8"
    if content is None:
        content = json.dumps(payload if payload is not None else {}).encode("utf-8")
    response._content = content
    return response


def make_http_error(status: int) -> requests.HTTPError:
    response = make_response(status, url="https://instance.example/")
    return requests.HTTPError(f"{status} Error", response=response)


class FakeSession:
    """Routes ``get`` calls to a handler ``(url, params) -> Response``."""

    def __init__(self, handler: Callable) -> None:
        self.handler = handler
        self.calls: List[tuple] = []
        self.headers = {}

    def get(self, url, params=None, timeout=None, **kwargs):
        self.calls.append((url, params))
        result = self.handler(url, params)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> InstanceRegistry:
    return InstanceRegistry(piped_instances=list(PIPED), invidious_instances=list(INVIDIOUS), clock=clock)


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "RATELIMIT_ENABLED": False,
            "DOWNLOAD_DIR": str(tmp_path / "downloads"),
        },
        start_discovery=False,
    )
    yield app


@pytest.fixture
def app_context(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()
