import re
from dataclasses import dataclass

PROXY_MOUNT = "ssrsproxy"

_MOUNT_PATTERN = re.compile(re.escape(f"/{PROXY_MOUNT}/"), re.IGNORECASE)
_REPORT_SERVER_SEGMENTS = ("/ReportServer", "/Reports")


class TargetResolutionError(ValueError):
    """Raised when an inbound proxy path does not name a report server."""


@dataclass(frozen=True)
class UpstreamTarget:
    scheme: str
    host: str
    port: str
    resource_path: str

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}{self.resource_path}"


def _find_segment(requested: str) -> int:
    lowered = requested.lower()
    for segment in _REPORT_SERVER_SEGMENTS:
        index = lowered.find(segment.lower())
        if index != -1:
            return index
    return -1


def resolve_target(path: str, query: str = "") -> UpstreamTarget:
    """
    Derive the upstream report server from an inbound proxy path.

    The path has the shape ``/ssrsproxy/<scheme>/<host>/<port>/ReportServer/...``
    (or ``/Reports/...``); anything before the mount, such as an application
    root path, is ignored. Host and port are not validated here, a malformed
    value surfaces as a connection failure when the request is sent.
    """
    match = _MOUNT_PATTERN.search(path)
    requested = path[match.end():] if match else path.lstrip("/")
    if query:
        requested = f"{requested}?{query}"

    index = _find_segment(requested)
    if index == -1:
        raise TargetResolutionError(
            f"No /ReportServer or /Reports segment in proxy path: {path}"
        )

    parts = requested[:index].split("/")
    if len(parts) != 3:
        raise TargetResolutionError(
            f"Expected <scheme>/<host>/<port> before the report server segment, got: {requested[:index]!r}"
        )

    scheme, host, port = parts
    return UpstreamTarget(
        scheme=scheme, host=host, port=port, resource_path=requested[index:]
    )
