import httpx
import pytest
from fastapi.testclient import TestClient

from rewrite_proxy.app_proxy.decoy import DECOY_PAGE
from rewrite_proxy.app_proxy.route import get_transport


@pytest.fixture(scope="module")
def server_app():
    from rewrite_proxy.server import app

    return app


@pytest.fixture
def test_client(server_app):
    with TestClient(server_app, base_url="https://public.example") as client:
        yield client
    server_app.dependency_overrides.clear()


@pytest.fixture
def use_backend(server_app, backend):
    """Route outbound requests of the app to a mock backend."""

    def _use_backend(**kwargs):
        transport = backend(**kwargs)
        server_app.dependency_overrides[get_transport] = lambda: transport
        return transport

    return _use_backend


@pytest.fixture
def backend_env(monkeypatch):
    monkeypatch.setenv("PROXY_HOSTNAME", "backend.example")
    monkeypatch.setenv("PROXY_PORT", "443")


def test_text_response_rewritten(test_client, use_backend, backend_env):
    use_backend(headers={"content-type": "text/html"}, body=b"Link: backend.example:443/x")

    response = test_client.get("/page")

    assert response.status_code == 200
    assert response.text == "Link: public.example:443/x"


def test_binary_response_passthrough(test_client, use_backend, backend_env):
    payload = b"\x89PNG\r\n\x1a\n" + b"backend.example:443" * 50
    use_backend(headers={"content-type": "image/png"}, body=payload)

    response = test_client.get("/logo.png")

    assert response.status_code == 200
    assert response.content == payload


def test_post_body_forwarded(test_client, use_backend, backend_env):
    transport = use_backend(status_code=201, headers={"content-type": "text/plain"}, body=b"ok")

    response = test_client.post("/api/items?draft=1", content=b"name=test")

    assert response.status_code == 201
    sent = transport.calls[0]
    assert sent.method == "POST"
    assert sent.url.path == "/api/items"
    assert sent.url.query == b"draft=1"
    assert sent.content == b"name=test"


def test_denied_request_gets_decoy(test_client, use_backend, backend_env, monkeypatch):
    monkeypatch.setenv("UA_DENY_REGEX", "curl")
    transport = use_backend(body=b"secret")

    response = test_client.get("/page", headers={"user-agent": "curl/8.0"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/html; charset=utf-8"
    assert response.text == DECOY_PAGE
    assert transport.calls == []


def test_denied_request_redirected(test_client, use_backend, backend_env, monkeypatch):
    monkeypatch.setenv("REGION_ALLOW_REGEX", "DE|FR")
    monkeypatch.setenv("FALLBACK_REDIRECT_URL", "https://example.org/")
    use_backend()

    response = test_client.get(
        "/page", headers={"cf-ipcountry": "CN"}, follow_redirects=False
    )

    assert response.status_code == 302
    assert response.headers["location"] == "https://example.org/"


def test_allowed_region(test_client, use_backend, backend_env, monkeypatch):
    monkeypatch.setenv("REGION_ALLOW_REGEX", "DE|FR")
    use_backend(headers={"content-type": "text/plain"}, body=b"hello")

    response = test_client.get("/page", headers={"cf-ipcountry": "FR"})

    assert response.text == "hello"


def test_unconfigured_route_gets_decoy(test_client, use_backend):
    transport = use_backend()

    response = test_client.get("/")

    assert response.status_code == 200
    assert response.text == DECOY_PAGE
    assert transport.calls == []


def test_transport_failure_is_generic_500(test_client, use_backend, backend_env):
    use_backend(error=httpx.ConnectError("Connection refused by backend.example"))

    response = test_client.get("/page")

    assert response.status_code == 500
    assert response.text == "Internal Server Error"


def test_metrics_served_locally(test_client, use_backend, backend_env):
    transport = use_backend()

    response = test_client.get("/metrics")

    assert response.status_code == 200
    assert "fastapi_app_info" in response.text
    assert transport.calls == []
