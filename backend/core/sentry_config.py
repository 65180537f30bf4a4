"""
Sentry SDK configuration.

Reports carry citizen locations and contact details, so events are scrubbed
before they leave the process. Sentry stays off unless SENTRY_DSN is set.
"""

import os
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.loguru import LoguruIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.types import Event, Hint

# Request body keys that can identify a reporter or a precise address
_SCRUBBED_BODY_KEYS = ("email", "address", "coordinates", "pincode", "message")

_HEALTH_PATHS = ("/health", "/api/health")


def _before_send(event: Event, hint: Hint) -> Event | None:
    """Strip reporter PII from an error event, keeping only the user ID."""
    user = event.get("user")
    if user:
        user.pop("email", None)
        user.pop("username", None)
        if "ip_address" in user:
            user["ip_address"] = "{{auto}}"

    request = event.get("request")
    if request and isinstance(request, dict):
        request.pop("cookies", None)
        headers = request.get("headers")
        if isinstance(headers, dict) and "Authorization" in headers:
            headers["Authorization"] = "[Filtered]"
        data = request.get("data")
        if isinstance(data, dict):
            for key in _SCRUBBED_BODY_KEYS:
                if key in data:
                    data[key] = "[Filtered]"

    return event


def _before_send_transaction(event: Event, hint: Hint) -> Event | None:
    """Drop health-check transactions."""
    transaction_name = event.get("transaction", "")
    if transaction_name in _HEALTH_PATHS or transaction_name in (
        f"GET {path}" for path in _HEALTH_PATHS
    ):
        return None
    return event


def _traces_sampler(sampling_context: dict[str, Any]) -> float:
    """
    Sample traces by path.

    Issue creation runs the whole dedup pipeline, so it is traced more
    often than reads.
    """
    if sampling_context.get("parent_sampled") is True:
        return 1.0

    asgi_scope = sampling_context.get("asgi_scope", {})
    path = asgi_scope.get("path", "")
    method = asgi_scope.get("method", "")

    if path in _HEALTH_PATHS:
        return 0.0

    if path.startswith("/api/issues/cluster"):
        return 1.0

    if path.rstrip("/") == "/api/issues" and method == "POST":
        return 0.5

    return 0.2


def init_sentry() -> None:
    """
    Initialize Sentry SDK with FastAPI integration.

    Call this BEFORE creating the FastAPI app instance.
    """
    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=os.getenv("SENTRY_RELEASE", "unknown"),
        send_default_pii=False,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoguruIntegration(),
        ],
        traces_sampler=_traces_sampler,
        sample_rate=1.0,
        before_send=_before_send,
        before_send_transaction=_before_send_transaction,
        attach_stacktrace=True,
        max_breadcrumbs=50,
        ignore_errors=[KeyboardInterrupt, SystemExit],
    )
