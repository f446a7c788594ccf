from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from ghrelay.relay import engine
from ghrelay.vars import ProxyConfig


def upstream_response(status_code=200, headers=None, body=b""):
    """An origin response whose body is still a stream, as the relay expects."""
    return httpx.Response(
        status_code, headers=headers or {}, stream=httpx.ByteStream(body)
    )


@pytest.fixture
def origin(monkeypatch):
    """
    Route all outbound relay traffic to an in-process handler.

    Returns a setter taking ``handler(request) -> httpx.Response``; every
    request seen by the handler is recorded on ``setter.requests``.
    """
    requests: list[httpx.Request] = []

    def install(handler: Callable[[httpx.Request], httpx.Response]):
        def recording(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        transport = httpx.MockTransport(recording)
        monkeypatch.setattr(
            "ghrelay.relay.route.build_client",
            lambda config: engine.build_client(config, transport=transport),
        )
        return requests

    install.requests = requests
    return install


@pytest.fixture
def make_client():
    def _make(config: ProxyConfig = None) -> TestClient:
        from ghrelay.server import create_app

        return TestClient(create_app(config or ProxyConfig()), follow_redirects=False)

    return _make
