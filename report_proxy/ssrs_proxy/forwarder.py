import logging
from typing import Any, Dict, Iterable, List, Tuple

import httpx
from fastapi import Request

from report_proxy.ssrs_proxy.hooks import ProxyHooks
from report_proxy.vars import UPSTREAM_ALLOW_UNSAFE_CERT, UPSTREAM_TIMEOUT

logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Host must name the report server, Content-Length is recomputed for the
# re-encoded body and Accept-Encoding is limited to what httpx decodes.
SKIPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {
    "host",
    "content-length",
    "accept-encoding",
}

ACCEPT_ENCODING = "gzip, deflate"
WRITE_METHODS = {"POST", "PUT", "PATCH"}

# Partial postbacks from the ASP.NET AJAX ScriptManager carry this marker in
# their form body; the report server only parses them with the original type.
AJAX_MARKER = "AjaxScriptManager"
TEXT_BODY_CONTENT_TYPE = "text/plain; charset=utf-8"


def is_write_method(method: str) -> bool:
    return method.upper() in WRITE_METHODS


def prepare_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """
    Copy inbound headers for the upstream request.

    Every header is kept in order, duplicates included, except Host, the
    hop-by-hop headers and the ones describing the inbound body encoding.
    """
    forwarded = [
        (name, value)
        for name, value in headers
        if name.lower() not in SKIPPED_REQUEST_HEADERS
    ]
    forwarded.append(("accept-encoding", ACCEPT_ENCODING))
    return forwarded


def client_options() -> Dict[str, Any]:
    return {
        "follow_redirects": True,
        "timeout": httpx.Timeout(UPSTREAM_TIMEOUT),
        "verify": not UPSTREAM_ALLOW_UNSAFE_CERT,
    }


def create_http_client(hooks: ProxyHooks) -> httpx.AsyncClient:
    """Create a per-request client that follows redirects and decompresses."""
    options = client_options()
    hooks.on_client_create(options)
    return httpx.AsyncClient(**options)


async def forward_request(
    client: httpx.AsyncClient, request: Request, url: str, hooks: ProxyHooks
) -> httpx.Response:
    """
    Send the inbound request to ``url`` and return the streamed upstream response.

    Write requests have their body buffered and re-attached as UTF-8 text. The
    caller owns the returned response and must close it.
    """
    headers = httpx.Headers(prepare_headers(request.headers.items()))
    content = None

    if is_write_method(request.method):
        body = (await request.body()).decode("utf-8", errors="replace")
        content = body.encode("utf-8")
        headers["content-type"] = TEXT_BODY_CONTENT_TYPE

        original_content_type = request.headers.get("content-type")
        if AJAX_MARKER in body and original_content_type:
            headers["content-type"] = original_content_type

    outbound = client.build_request(
        request.method, url, headers=headers, content=content
    )
    hooks.on_report_request(outbound)

    logger.debug(f"Forwarding {request.method} to report server {url}")
    return await client.send(outbound, stream=True)
