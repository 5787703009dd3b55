"""
Prometheus metrics middleware.

Collects HTTP request metrics (counter + histogram) and exposes application-level
counters for access decisions and webhook confirmation polling.
"""

import re
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Access control metrics ───────────────────────────────────────────────────

access_denied_total = Counter(
    "access_denied_total",
    "Requests or route checks denied by the access control table",
    ["reason"],
)

# ── Webhook confirmation metrics ─────────────────────────────────────────────

webhook_polls_total = Counter(
    "webhook_polls_total",
    "Webhook confirmation polls by terminal outcome",
    ["outcome"],  # completed | failed | exhausted
)

webhook_poll_attempts = Histogram(
    "webhook_poll_attempts",
    "Lookup attempts used by a webhook confirmation poll",
    buckets=(1, 2, 3, 5, 10, 20, 30),
)

webhook_lookup_errors_total = Counter(
    "webhook_lookup_errors_total",
    "Transaction lookups that failed and were treated as not found",
)


_UUID_RE = re.compile(r"^[0-9a-fA-F-]{32,36}$")


def _normalize_path(path: str) -> str:
    """Collapse path parameters to reduce cardinality.

    e.g. /api/payments/cs_9f8e7d6c5b4a/confirm → /api/payments/{id}/confirm
    """
    parts = path.strip("/").split("/")
    in_payments = parts[:2] == ["api", "payments"]
    normalized = []
    for i, part in enumerate(parts):
        if i == 2 and in_payments:
            # any checkout session reference
            normalized.append("{id}")
        elif i > 1 and (
            part.startswith("cs_")
            or _UUID_RE.match(part)
            or part.isdigit()
            or len(part) > 20
        ):
            normalized.append("{id}")
        else:
            normalized.append(part)
    return "/" + "/".join(normalized)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Skip metrics endpoint itself to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        http_requests_total.labels(
            method=method,
            path=path,
            status_code=response.status_code,
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            path=path,
        ).observe(duration)

        return response
