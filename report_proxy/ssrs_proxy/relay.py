from typing import Dict, List

import httpx
from starlette.responses import Response

# Encodings httpx decodes before the body reaches us
DECODED_ENCODINGS = {"gzip", "deflate", "identity"}


def _group_headers(headers: httpx.Headers) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for name, value in headers.multi_items():
        grouped.setdefault(name.lower(), []).append(value)
    return grouped


def body_was_decoded(upstream: httpx.Response) -> bool:
    encoding = upstream.headers.get("content-encoding", "")
    codings = [c.strip().lower() for c in encoding.split(",") if c.strip()]
    return bool(codings) and all(c in DECODED_ENCODINGS for c in codings)


def copy_response_headers(upstream: httpx.Response, response: Response) -> None:
    """
    Copy status and headers of the upstream response onto ``response``.

    Each upstream header replaces whatever the outbound response already had
    under that name. Transfer-Encoding is always dropped since the body is
    re-emitted with its own framing.
    """
    response.status_code = upstream.status_code

    for name, values in _group_headers(upstream.headers).items():
        del response.headers[name]
        for value in values:
            response.headers.append(name, value)

    del response.headers["transfer-encoding"]

    # httpx hands us the decoded body, so the upstream encoding and length lie
    if body_was_decoded(upstream):
        del response.headers["content-encoding"]
        del response.headers["content-length"]
