"""Outbound HTTP helpers enforcing TLS verification, timeouts and a host allowlist."""

from __future__ import annotations

import os
from typing import Any, Optional
from urllib.parse import urlparse

import requests
from prometheus_client import Counter


EGRESS_FAILURES = Counter(
    "codepilot_egress_failures_total",
    "Outbound HTTP calls blocked or failed security checks",
    ("reason",),
)


class EgressBlockedError(RuntimeError):
    """Raised when a request targets a host outside the allowlist."""


def _allowed_hosts() -> set[str]:
    raw = os.getenv("ALLOWED_EGRESS_HOSTS")
    if raw:
        return {host.strip().lower() for host in raw.split(",") if host.strip()}
    hosts = {"api.openai.com", "localhost", "127.0.0.1"}
    base_url = os.getenv("OPENAI_BASE_URL")
    if base_url:
        parsed = urlparse(base_url)
        if parsed.hostname:
            hosts.add(parsed.hostname.lower())
    return hosts


def _verify_host(url: str) -> None:
    host = (urlparse(url).hostname or "").lower()
    if host not in _allowed_hosts():
        EGRESS_FAILURES.labels(reason="disallowed_host").inc()
        raise EgressBlockedError(f"Egress to host '{host}' is not permitted")


def secure_request(
    method: str, url: str, *, timeout: Optional[float] = None, **kwargs: Any
) -> requests.Response:
    """Dispatch a HTTP request; non-2xx responses raise ``requests.HTTPError``."""

    _verify_host(url)
    kwargs["timeout"] = timeout if timeout is not None else 10
    kwargs.setdefault("verify", True)
    try:
        response = requests.request(method=method, url=url, **kwargs)
        response.raise_for_status()
        return response
    except requests.exceptions.SSLError:
        EGRESS_FAILURES.labels(reason="tls_failure").inc()
        raise
    except requests.exceptions.Timeout:
        EGRESS_FAILURES.labels(reason="timeout").inc()
        raise
    except requests.exceptions.HTTPError:
        EGRESS_FAILURES.labels(reason="http_status").inc()
        raise
    except requests.exceptions.RequestException:
        EGRESS_FAILURES.labels(reason="network_failure").inc()
        raise


def secure_post(url: str, **kwargs: Any) -> requests.Response:
    return secure_request("POST", url, **kwargs)


__all__ = ["EGRESS_FAILURES", "EgressBlockedError", "secure_request", "secure_post"]
