"""Tests for the HTTP dispatcher connector."""

from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from actionflow.connectors.http_dispatcher import DispatchError, HttpDispatcher
from actionflow.runtime.request_builder import HttpRequest


class TestHttpDispatcher:
    @pytest.mark.asyncio
    async def test_json_response_shaped(self, dispatcher, fake_api):
        fake_api.add("POST", "/users", status=201, json_body={"id": "u-1"})
        out = await dispatcher.execute(
            HttpRequest("POST", "https://api.test/users", {"X-Trace": "t"}, {"name": "Ada"})
        )
        assert out["status"] == 201
        assert out["ok"] is True
        assert out["body"] == {"id": "u-1"}
        assert out["headers"]["content-type"] == "application/json"

        sent = fake_api.calls("/users")[0]
        assert fake_api.json_of(sent) == {"name": "Ada"}
        assert sent.headers["X-Trace"] == "t"

    @pytest.mark.asyncio
    async def test_non_2xx_is_output_not_error(self, dispatcher, fake_api):
        fake_api.add("GET", "/missing", status=404, json_body={"error": "nope"})
        out = await dispatcher.execute(HttpRequest("GET", "https://api.test/missing"))
        assert out["status"] == 404
        assert out["ok"] is False
        assert out["body"] == {"error": "nope"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "HEAD"])
    async def test_bodyless_methods_send_no_body(self, dispatcher, fake_api, method):
        fake_api.add(method, "/items", status=200, json_body=None)
        await dispatcher.execute(HttpRequest(method, "https://api.test/items", body={"ignored": True}))
        assert fake_api.calls("/items")[0].content == b""

    @pytest.mark.asyncio
    async def test_text_response(self, fake_api):
        fake_api.add(
            "GET", "/text", handler=lambda r: httpx.Response(200, text="plain", headers={"content-type": "text/plain"})
        )
        d = HttpDispatcher(transport=httpx.MockTransport(fake_api))
        try:
            out = await d.execute(HttpRequest("GET", "https://api.test/text"))
        finally:
            await d.aclose()
        assert out["body"] == "plain"

    @pytest.mark.asyncio
    async def test_empty_response_body_is_none(self, dispatcher, fake_api):
        fake_api.add("DELETE", "/users/1", handler=lambda r: httpx.Response(204))
        out = await dispatcher.execute(HttpRequest("DELETE", "https://api.test/users/1"))
        assert out["status"] == 204
        assert out["body"] is None

    @pytest.mark.asyncio
    async def test_string_body_sent_raw(self, dispatcher, fake_api):
        fake_api.add("POST", "/raw", status=200, json_body={})
        await dispatcher.execute(HttpRequest("POST", "https://api.test/raw", body="a=1&b=2"))
        assert fake_api.calls("/raw")[0].content == b"a=1&b=2"

    @pytest.mark.asyncio
    async def test_connection_error_raises_dispatch_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        d = HttpDispatcher(transport=httpx.MockTransport(refuse))
        try:
            with pytest.raises(DispatchError, match="connection refused"):
                await d.execute(HttpRequest("GET", "https://down.test/"))
        finally:
            await d.aclose()

    @pytest.mark.asyncio
    async def test_timeout_raises_dispatch_error(self):
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        d = HttpDispatcher(timeout=0.5, transport=httpx.MockTransport(slow))
        try:
            with pytest.raises(DispatchError, match="timed out"):
                await d.execute(HttpRequest("GET", "https://slow.test/"))
        finally:
            await d.aclose()

    @pytest.mark.asyncio
    async def test_timeout_bounds_the_whole_call(self):
        # Never trips an httpx phase timeout; only the overall bound stops it.
        async def drip(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        d = HttpDispatcher(timeout=0.1, transport=httpx.MockTransport(drip))
        started = time.monotonic()
        try:
            with pytest.raises(DispatchError, match="timed out after 0.1s"):
                await d.execute(HttpRequest("GET", "https://drip.test/"))
        finally:
            await d.aclose()
        assert time.monotonic() - started < 2
