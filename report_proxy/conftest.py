from typing import Callable, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from report_proxy.ssrs_proxy.hooks import ProxyHooks, get_proxy_hooks


class FakeReportServer:
    """Records upstream requests and answers them through an httpx mock transport."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: (
            httpx.Response(200, headers={"content-type": "text/html"}, content=b"")
        )

    def respond(
        self,
        status_code: int = 200,
        headers: Optional[list] = None,
        content: bytes = b"",
    ) -> None:
        self.handler = lambda request: httpx.Response(
            status_code, headers=headers or [], content=content
        )

    def fail(self, exception: Exception) -> None:
        def _raise(request):
            raise exception

        self.handler = _raise

    def handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self.handler(request)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def hooks(self, on_report_request=None) -> ProxyHooks:
        def on_client_create(options):
            options["transport"] = httpx.MockTransport(self.handle)

        if on_report_request is None:
            return ProxyHooks(on_client_create=on_client_create)
        return ProxyHooks(
            on_client_create=on_client_create, on_report_request=on_report_request
        )


@pytest.fixture
def report_server():
    return FakeReportServer()


@pytest.fixture
def test_client(report_server):
    from report_proxy.server import app

    app.dependency_overrides[get_proxy_hooks] = lambda: report_server.hooks()
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
