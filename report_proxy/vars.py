import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "ssrs-report-proxy")

# Public-facing base URL used when rewriting report server links.
# Falls back to the inbound request's scheme, host and root path when empty.
PUBLIC_URL = os.environ.get("PUBLIC_URL", "").rstrip("/")


def _parse_timeout(raw: str):
    if not raw:
        return None
    value = float(raw)
    return value if value > 0 else None


UPSTREAM_TIMEOUT = _parse_timeout(os.environ.get("UPSTREAM_TIMEOUT", ""))
UPSTREAM_ALLOW_UNSAFE_CERT = (
    os.getenv("UPSTREAM_ALLOW_UNSAFE_CERT", "false").lower() == "true"
)
TRANSFER_BUFFER_SIZE = int(os.getenv("TRANSFER_BUFFER_SIZE", "81920"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
