"""
Extension points for collaborators embedding the report proxy.

Register custom behaviour by overriding the ``get_proxy_hooks`` dependency:

    app.dependency_overrides[get_proxy_hooks] = lambda: ProxyHooks(
        on_client_create=lambda options: options.update(auth=httpx.BasicAuth(u, p)),
        on_report_request=lambda request: request.headers.update({"X-Token": t}),
    )
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict

import httpx


def _noop(_target: Any) -> None:
    return None


@dataclass(frozen=True)
class ProxyHooks:
    # Receives the keyword arguments for httpx.AsyncClient before it is built,
    # e.g. to inject credentials, client certificates, proxies or a transport.
    on_client_create: Callable[[Dict[str, Any]], None] = _noop
    # Receives the outbound request just before it is sent.
    on_report_request: Callable[[httpx.Request], None] = _noop


DEFAULT_HOOKS = ProxyHooks()


def get_proxy_hooks() -> ProxyHooks:
    return DEFAULT_HOOKS
