"""
URL rewriting for report server responses.

The report viewer embeds two kinds of links: absolute paths under one of the
report server segments (``/ReportServer/...`` or ``/Reports/...``) and relative
references to ``ReportViewer.aspx``. Both are redirected through the proxy.

Partial postbacks answer with the ASP.NET AJAX delta format, a sequence of
length-prefixed frames ``<length>|<type>|<id>|<content>|`` with no separator
between frames. Frame content is rewritten like any other body, so each
frame's length has to be recomputed afterwards. Lengths are counted in UTF-16
code units, the way the report server and the browser-side AJAX client count
them, both when parsing and when writing frames back out.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List
from urllib.parse import urlsplit

from report_proxy.ssrs_proxy.target import PROXY_MOUNT

logger = logging.getLogger("uvicorn.error")

FRAME_DELIMITER = "|"
REPORT_VIEWER_PAGE = "ReportViewer.aspx"
RELATIVE_REPORT_VIEWER = f"./{REPORT_VIEWER_PAGE}"

_DEFAULT_PORTS = {"http": 80, "https": 443}


def report_server_segment(upstream_url: str) -> str:
    """Pick the URL namespace the upstream report engine answered from."""
    return "ReportServer" if "/reportserver/" in upstream_url.lower() else "Reports"


@dataclass(frozen=True)
class RewriteContext:
    proxy_base: str
    report_server: str

    @property
    def report_server_url(self) -> str:
        return f"{self.proxy_base}/{self.report_server}/"

    @property
    def report_viewer_url(self) -> str:
        return f"{self.proxy_base}/{self.report_server}/Pages/{REPORT_VIEWER_PAGE}"


def build_rewrite_context(public_base: str, upstream_url: str) -> RewriteContext:
    """
    Build the rewrite context for one proxied exchange.

    ``public_base`` is the externally visible scheme, host and root path of
    the proxy application, e.g. ``https://host/app``.
    """
    parts = urlsplit(upstream_url)
    port = parts.port or _DEFAULT_PORTS.get(parts.scheme.lower(), "")
    proxy_base = (
        f"{public_base.rstrip('/')}/{PROXY_MOUNT}/{parts.scheme}/{parts.hostname}/{port}"
    )
    return RewriteContext(
        proxy_base=proxy_base, report_server=report_server_segment(upstream_url)
    )


def utf16_length(text: str) -> int:
    return len(text) + sum(1 for char in text if ord(char) > 0xFFFF)


def _advance_utf16(text: str, index: int, units: int) -> int:
    """Index reached after consuming ``units`` UTF-16 code units, or -1."""
    while units > 0 and index < len(text):
        units -= 2 if ord(text[index]) > 0xFFFF else 1
        index += 1
    return index if units == 0 else -1


def _replace(pattern: str, replacement: str, text: str, skip_after: str) -> str:
    # Occurrences that already carry the proxied prefix are left untouched
    regex = re.compile(
        f"(?<!{re.escape(skip_after)}){re.escape(pattern)}", re.IGNORECASE
    )
    return regex.sub(lambda _match: replacement, text)


def rewrite_urls(text: str, context: RewriteContext) -> str:
    """Redirect report server links in ``text`` through the proxy."""
    # Text carrying the proxied viewer URL went through the relative branch before
    already_rewritten = context.report_viewer_url.lower() in text.lower()
    text = _replace(
        f"/{context.report_server}/",
        context.report_server_url,
        text,
        skip_after=context.proxy_base,
    )

    viewer_prefix = context.report_viewer_url[: -len(REPORT_VIEWER_PAGE)]
    if already_rewritten or RELATIVE_REPORT_VIEWER.lower() in text.lower():
        return _replace(
            RELATIVE_REPORT_VIEWER,
            context.report_viewer_url,
            text,
            skip_after=viewer_prefix,
        )
    return _replace(
        REPORT_VIEWER_PAGE, context.report_viewer_url, text, skip_after=viewer_prefix
    )


@dataclass(frozen=True)
class DeltaFrame:
    length: int
    type: str
    id: str
    content: str

    def serialize(self) -> str:
        return FRAME_DELIMITER.join(
            [str(self.length), self.type, self.id, self.content, ""]
        )

    @classmethod
    def create(cls, type: str, id: str, content: str) -> "DeltaFrame":
        return cls(length=utf16_length(content), type=type, id=id, content=content)


def is_delta_stream(text: str) -> bool:
    return FRAME_DELIMITER in text


def iter_delta_frames(text: str) -> Iterator[DeltaFrame]:
    """
    Parse a delta stream frame by frame.

    Iteration stops at the first malformed frame: a length that is not a
    decimal number, a missing delimiter, content shorter than its declared
    length or a missing terminator. The unparsed tail is dropped.
    """
    index = 0
    while index < len(text):
        start = index
        delimiter = text.find(FRAME_DELIMITER, index)
        if delimiter == -1:
            break

        token = text[index:delimiter]
        if not (token.isascii() and token.isdigit()):
            break
        length = int(token)

        index = delimiter + 1
        delimiter = text.find(FRAME_DELIMITER, index)
        if delimiter == -1:
            break
        frame_type = text[index:delimiter]

        index = delimiter + 1
        delimiter = text.find(FRAME_DELIMITER, index)
        if delimiter == -1:
            break
        frame_id = text[index:delimiter]

        index = delimiter + 1
        # content plus its terminating delimiter must be available
        end = _advance_utf16(text, index, length)
        if end == -1 or end >= len(text):
            break
        content = text[index:end]
        index = end
        if text[index] != FRAME_DELIMITER:
            break
        index += 1

        yield DeltaFrame(length=length, type=frame_type, id=frame_id, content=content)
    else:
        return

    logger.debug(
        f"Delta stream truncated at offset {start}, dropping {len(text) - start} characters"
    )


def rewrite_delta_stream(text: str, context: RewriteContext) -> str:
    """Rewrite the content of every frame and re-emit it with a fresh length."""
    output: List[str] = []
    for frame in iter_delta_frames(text):
        rewritten = DeltaFrame.create(
            frame.type, frame.id, rewrite_urls(frame.content, context)
        )
        output.append(rewritten.serialize())
    return "".join(output)
