"""Root test configuration for Molt-Guard.

Provides an in-process stub backend (``httpx.MockTransport``) and a factory
that builds a ready gateway wired to it, so no test touches the network or a
real config file.

Environment variables read by ``load_config`` are cleared for every test;
config tests that need them set them explicitly.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

import httpx
import pytest
from starlette.testclient import TestClient

from moltguard.config import Config
from moltguard.utils.logger import clear_request_context

CONFIG_ENV_VARS = (
    "MOLTGUARD_CONFIG",
    "OLLAMA_URL",
    "VALIDATION_MODE",
    "SENSITIVITY",
    "GUARD_MODEL",
    "MOLTGUARD_PORT",
    "VAULT_ADDR",
    "VAULT_TOKEN",
    "VAULT_SECRET_PATH",
)

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """No config env var leaks into a test; no request id leaks out of one."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_request_context()


class MockBackend:
    """Stub inference backend.

    Routes are keyed by (method, path). Every request is recorded; unknown
    routes answer 404 like a backend that does not serve them.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Responder] = {}

    def on(self, method: str, path: str, response: Responder) -> None:
        self._routes[(method.upper(), path)] = response

    def on_json(
        self,
        method: str,
        path: str,
        body: Any,
        status_code: int = 200,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.on(method, path, lambda request: httpx.Response(status_code, json=body, headers=headers))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self._routes.get((request.method, request.url.path))
        if responder is None:
            response = httpx.Response(404, json={"error": "not found"})
        elif isinstance(responder, httpx.Response):
            response = responder
        else:
            response = responder(request)
        return self._unread(response)

    @staticmethod
    def _unread(response: httpx.Response) -> httpx.Response:
        # Responses built from ``content=``/``json=`` arrive already read, which
        # ``aiter_raw`` refuses; hand the body over as an unread stream instead.
        return httpx.Response(
            response.status_code,
            headers=response.headers,
            stream=httpx.ByteStream(response.content),
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def backend() -> MockBackend:
    return MockBackend()


@pytest.fixture
def gateway(
    backend: MockBackend, monkeypatch: pytest.MonkeyPatch
) -> Callable[..., TestClient]:
    """Factory: ``with gateway(config) as client:`` runs the full lifespan."""

    def _build(config: Optional[Config] = None) -> TestClient:
        from moltguard.main import create_app

        resolved = config or Config.defaults()
        monkeypatch.setattr("moltguard.main.load_config", lambda *a, **k: resolved)
        monkeypatch.setattr(
            "moltguard.main.create_http_client", lambda *a, **k: backend.client()
        )
        return TestClient(create_app())

    return _build
