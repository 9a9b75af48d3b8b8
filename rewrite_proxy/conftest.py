from typing import Iterable, List, Optional, Tuple, Union
from urllib.parse import urlsplit

import httpx
import pytest
from starlette.requests import Request

from rewrite_proxy.models import DEFAULT_PORTS
from rewrite_proxy.vars import ROUTE_ENV_VARS

HeaderInput = Union[dict, Iterable[Tuple[str, str]]]


@pytest.fixture(autouse=True)
def clean_route_env(monkeypatch):
    """Start every test without any route configuration in the environment."""
    for name in ROUTE_ENV_VARS.values():
        monkeypatch.delenv(name, raising=False)


def _pairs(headers: Optional[HeaderInput]) -> List[Tuple[str, str]]:
    if not headers:
        return []
    if isinstance(headers, dict):
        return list(headers.items())
    return list(headers)


@pytest.fixture
def make_request():
    """Build a real Starlette request for an absolute URL."""

    def _make_request(
        url: str = "https://public.example/page",
        method: str = "GET",
        headers: Optional[HeaderInput] = None,
        body: bytes = b"",
        client: Tuple[str, int] = ("198.51.100.20", 51000),
    ) -> Request:
        parsed = urlsplit(url)
        raw_headers = [(b"host", parsed.netloc.encode("latin-1"))]
        for name, value in _pairs(headers):
            raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))
        if body:
            raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))
        path = parsed.path or "/"
        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": method,
            "scheme": parsed.scheme,
            "path": path,
            "raw_path": path.encode("latin-1"),
            "query_string": parsed.query.encode("latin-1"),
            "root_path": "",
            "headers": raw_headers,
            "client": client,
            "server": (parsed.hostname, parsed.port or DEFAULT_PORTS[parsed.scheme]),
        }
        body_sent = False

        async def receive():
            nonlocal body_sent
            if body_sent:
                return {"type": "http.disconnect"}
            body_sent = True
            return {"type": "http.request", "body": body, "more_body": False}

        return Request(scope, receive)

    return _make_request


@pytest.fixture
def backend():
    """
    Create a mock backend transport. Every outbound request is recorded in
    ``transport.calls``; responses use an unread stream like a real socket.
    """

    def _backend(
        status_code: int = 200,
        headers: Optional[HeaderInput] = None,
        body: bytes = b"",
        error: Optional[Exception] = None,
    ) -> httpx.MockTransport:
        calls: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if error is not None:
                raise error
            return httpx.Response(
                status_code,
                headers=_pairs(headers),
                stream=httpx.ByteStream(body),
            )

        transport = httpx.MockTransport(handler)
        transport.calls = calls
        return transport

    return _backend
