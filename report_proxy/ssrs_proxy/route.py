import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask

from report_proxy.ssrs_proxy.forwarder import (
    create_http_client,
    forward_request,
    is_write_method,
)
from report_proxy.ssrs_proxy.hooks import ProxyHooks, get_proxy_hooks
from report_proxy.ssrs_proxy.relay import copy_response_headers
from report_proxy.ssrs_proxy.rewrite import (
    build_rewrite_context,
    is_delta_stream,
    rewrite_delta_stream,
    rewrite_urls,
)
from report_proxy.ssrs_proxy.target import (
    PROXY_MOUNT,
    TargetResolutionError,
    resolve_target,
)
from report_proxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from report_proxy import vars as config

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")


def public_base_url(request: Request) -> str:
    """Externally visible scheme, host and root path of this application."""
    if config.PUBLIC_URL:
        return config.PUBLIC_URL
    host = request.headers.get("host") or request.url.netloc
    root_path = request.scope.get("root_path", "").rstrip("/")
    return f"{request.url.scheme}://{host}{root_path}"


def raw_request_path(request: Request) -> str:
    """The inbound path as sent by the client, percent-encoding intact."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.decode("latin-1")
    return request.url.path


def media_type_of(upstream: httpx.Response) -> str:
    content_type = upstream.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower()


async def stream_upstream(
    upstream: httpx.Response, client: httpx.AsyncClient
) -> AsyncIterator[bytes]:
    """
    Relay the upstream body unmodified in bounded chunks.

    A client disconnect cancels this generator, which stops the upstream read.
    """
    try:
        async for chunk in upstream.aiter_bytes(config.TRANSFER_BUFFER_SIZE):
            yield chunk
    finally:
        await close_upstream(upstream, client)


async def close_upstream(upstream: httpx.Response, client: httpx.AsyncClient) -> None:
    await upstream.aclose()
    await client.aclose()


def passthrough_response(
    upstream: httpx.Response, client: httpx.AsyncClient
) -> StreamingResponse:
    # The background task also runs when the body was never iterated
    response = StreamingResponse(
        stream_upstream(upstream, client),
        background=BackgroundTask(close_upstream, upstream, client),
    )
    copy_response_headers(upstream, response)
    return response


def _gateway_error(exc: httpx.HTTPError, url: str, span) -> HTTPException:
    if isinstance(exc, httpx.TimeoutException):
        logger.error(f"[SSRS-Proxy] Timeout for {url}: {exc}")
        span.set_attribute("proxy.error", "timeout")
        return HTTPException(status_code=504, detail="Gateway timeout")

    log_exception_with_details(logger, "[SSRS-Proxy]", exc)
    if isinstance(exc, httpx.ConnectError):
        span.set_attribute("proxy.error", "connection_failed")
        return HTTPException(
            status_code=502, detail="Bad gateway - cannot connect to report server"
        )
    span.set_attribute("proxy.error", type(exc).__name__)
    return HTTPException(
        status_code=502, detail=f"Bad gateway: {format_exception_message(exc)}"
    )


async def proxy_to_upstream(
    request: Request, url: str, is_postback: bool, hooks: ProxyHooks
) -> Response:
    """
    Forward ``request`` to the report server at ``url`` and relay the answer.

    Partial postbacks are rewritten frame by frame, HTML pages as a whole and
    everything else is streamed through untouched.
    """
    with tracer.start_as_current_span("ssrs_proxy_request") as span:
        span.set_attribute("proxy.target_url", url)
        span.set_attribute("proxy.method", request.method)
        logger.debug(f"Proxying {request.method} {request.url.path} -> {url}")

        client = create_http_client(hooks)
        try:
            upstream = await forward_request(client, request, url, hooks)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise _gateway_error(exc, url, span)
        except BaseException:
            await client.aclose()
            raise

        span.set_attribute("proxy.status_code", upstream.status_code)

        if not is_postback and media_type_of(upstream) != "text/html":
            span.set_attribute("proxy.rewrite", "passthrough")
            return passthrough_response(upstream, client)

        try:
            await upstream.aread()
            text = upstream.text
        except httpx.HTTPError as exc:
            raise _gateway_error(exc, url, span)
        finally:
            await upstream.aclose()
            await client.aclose()

        context = build_rewrite_context(public_base_url(request), url)
        if is_postback and is_delta_stream(text):
            span.set_attribute("proxy.rewrite", "delta")
            text = rewrite_delta_stream(text, context)
        else:
            span.set_attribute("proxy.rewrite", "plain")
            text = rewrite_urls(text, context)

        body = text.encode("utf-8")
        response = Response(content=body)
        copy_response_headers(upstream, response)
        response.headers["content-length"] = str(len(body))
        return response


@router.get("/__ssrsreport")
async def forward_report(
    request: Request,
    url: Optional[str] = None,
    hooks: ProxyHooks = Depends(get_proxy_hooks),
):
    """Forward a GET request to an explicitly named report server URL."""
    if not url:
        raise HTTPException(status_code=400, detail="Missing url parameter")
    return await proxy_to_upstream(request, url, is_postback=False, hooks=hooks)


@router.api_route(f"/{PROXY_MOUNT}/{{path:path}}", methods=["GET", "POST"])
async def proxy_report_server(
    request: Request,
    path: str,
    hooks: ProxyHooks = Depends(get_proxy_hooks),
):
    """Catch-all route deriving the report server from the request path."""
    try:
        target = resolve_target(raw_request_path(request), request.url.query)
    except TargetResolutionError as exc:
        logger.warning(f"[SSRS-Proxy] {exc}")
        raise HTTPException(status_code=400, detail=str(exc))

    return await proxy_to_upstream(
        request,
        target.url,
        is_postback=is_write_method(request.method),
        hooks=hooks,
    )
