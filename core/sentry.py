"""Sentry error reporting for the search service.

Store operations leave breadcrumbs so a reported failure shows the selects
and writes that led up to it. Failures the search workflow absorbs (history
append, history clear) are reported explicitly with ``capture_exception``.
"""

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

logger = logging.getLogger(__name__)


def init_sentry(
    dsn: str | None,
    environment: str = "production",
    release: str | None = None,
    backend: str | None = None,
    traces_sample_rate: float = 1.0,
) -> bool:
    """Initialize the Sentry SDK for the FastAPI app.

    Args:
        dsn: Sentry DSN. Sentry stays disabled when empty.
        environment: Deployment environment ("production", "development", ...)
        release: Release version reported with every event
        backend: Record store backend name, attached as a tag
        traces_sample_rate: Fraction of requests traced

    Returns:
        True if Sentry was initialized
    """
    if not dsn:
        logger.info("Sentry DSN not configured, error reporting disabled")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        integrations=[FastApiIntegration()],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
    )
    if backend:
        sentry_sdk.set_tag("record_store_backend", backend)

    logger.info(f"Sentry initialized (environment: {environment}, backend: {backend})")
    return True


def add_store_breadcrumb(
    operation: str,
    collection: str,
    data: dict[str, Any] | None = None,
    level: str = "info",
) -> None:
    """Record a record store operation as a breadcrumb.

    Args:
        operation: "select", "insert", "delete_where" or a failure marker
        collection: Collection the operation targets
        data: Extra fields (limit, HTTP method, ...)
        level: Severity level ("debug", "info", "warning", "error")
    """
    sentry_sdk.add_breadcrumb(
        category="record_store",
        message=f"{operation} {collection}",
        data={"collection": collection, **(data or {})},
        level=level,
    )


def capture_exception(error: Exception, user_id: str | None = None, **context: Any) -> None:
    """Report an absorbed failure with the user and search context it happened in."""
    with sentry_sdk.new_scope() as scope:
        if user_id:
            scope.set_user({"id": user_id})
        if context:
            scope.set_context("search", context)
        scope.capture_exception(error)
