"""Shared fixtures for backend tests."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from actionflow.connectors.http_dispatcher import HttpDispatcher
from actionflow.db.engine import build_engine, build_session_factory
from actionflow.db.models import Base
from actionflow.services.credential_vault import CredentialVault
from actionflow.utils.metrics import metrics

# 32 UTF-8 characters → AES-256 key.
TEST_KEY = "0123456789abcdef0123456789abcdef"


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault(TEST_KEY)


# ── Database (in-memory SQLite) ─────────────────────────────────


@pytest.fixture
async def db_engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_factory(db_engine):
    return build_session_factory(db_engine)


# ── Fake third-party APIs ───────────────────────────────────────


class FakeApi:
    """httpx.MockTransport handler: routes on (method, path), records every request."""

    def __init__(self):
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, json_body: Any = None, handler=None):
        if handler is None:
            def handler(_request: httpx.Request, _status=status, _body=json_body) -> httpx.Response:
                return httpx.Response(_status, json=_body)
        self.routes[(method.upper(), path)] = handler
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "no route"})
        return handler(request)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @staticmethod
    def json_of(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
async def dispatcher(fake_api):
    d = HttpDispatcher(timeout=5.0, transport=httpx.MockTransport(fake_api))
    yield d
    await d.aclose()
