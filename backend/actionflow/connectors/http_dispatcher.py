"""HTTP dispatcher connector — sends one built request and shapes the response."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from actionflow.runtime.request_builder import HttpRequest

logger = logging.getLogger("actionflow.connectors.http")

# Methods that never carry a body, whatever the template says.
_BODYLESS_METHODS = frozenset({"GET", "HEAD"})


class DispatchError(Exception):
    """Transport-level failure: the request never produced an HTTP response."""

    def __init__(self, method: str, url: str, message: str):
        self.method = method
        self.url = url
        super().__init__(f"{method} {url} failed: {message}")


class HttpDispatcher:
    """
    Executes prepared requests against third-party APIs.

    Response contract (what downstream nodes see under ``$json.<nodeId>``):
      {
        "status": 200,
        "ok": true,
        "headers": {"content-type": "application/json", ...},
        "body": <parsed JSON, or text, or null when empty>
      }

    Non-2xx responses are returned, not raised; deciding whether they fail a
    node is the executor's job.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def execute(self, request: HttpRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"headers": request.headers}
        if request.method not in _BODYLESS_METHODS and request.body is not None:
            if isinstance(request.body, (str, bytes)):
                kwargs["content"] = request.body
            else:
                kwargs["json"] = request.body

        logger.info(
            "HTTP call: %s %s headers=%s",
            request.method,
            request.url,
            request.loggable_headers(),
        )
        try:
            # httpx applies its timeout per phase; wait_for bounds the whole call.
            resp = await asyncio.wait_for(
                self._client.request(request.method, request.url, **kwargs), self.timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise DispatchError(request.method, request.url, f"timed out after {self.timeout}s") from exc
        except httpx.RequestError as exc:
            raise DispatchError(request.method, request.url, str(exc) or type(exc).__name__) from exc

        logger.info("HTTP response: %s %s -> %s", request.method, request.url, resp.status_code)
        return {
            "status": resp.status_code,
            "ok": resp.is_success,
            "headers": dict(resp.headers),
            "body": _parse_body(resp),
        }

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_body(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    content_type = resp.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return resp.json()
        except ValueError:
            logger.warning("Response declared JSON but did not parse; keeping text")
    return resp.text
