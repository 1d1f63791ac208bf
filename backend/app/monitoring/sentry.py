# backend/app/monitoring/sentry.py
"""
Sentry wiring for the API process and Celery workers.

ERROR and CRITICAL log records become Sentry events, which is how a ledger
inconsistency reaches operators.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from app.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_TRACES_SAMPLE_RATE = 0.1
FAILED_REQUEST_STATUS_CODES = {403, *range(500, 600)}

_HEALTHCHECK_PATH_SUFFIXES = ("/health", "/metrics")


def _resolve_release() -> str | None:
    release = (os.getenv("GIT_SHA") or "").strip()
    return release or None


def _is_healthcheck_path(path: str | None) -> bool:
    if not path:
        return False
    normalized = path.rstrip("/") or "/"
    return any(normalized.endswith(suffix) for suffix in _HEALTHCHECK_PATH_SUFFIXES)


def _traces_sampler(sampling_context: Mapping[str, Any]) -> float:
    scope = sampling_context.get("asgi_scope")
    path = scope.get("path") if isinstance(scope, Mapping) else None
    if _is_healthcheck_path(path if isinstance(path, str) else None):
        return 0.0
    return DEFAULT_TRACES_SAMPLE_RATE


def init_sentry() -> bool:
    dsn = (settings.sentry_dsn or "").strip()
    if not dsn:
        logger.debug("Sentry disabled: SENTRY_DSN not set")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=settings.environment,
        release=_resolve_release(),
        integrations=[
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            FastApiIntegration(
                transaction_style="endpoint",
                failed_request_status_codes=FAILED_REQUEST_STATUS_CODES,
            ),
            CeleryIntegration(),
        ],
        send_default_pii=False,
        traces_sampler=_traces_sampler,
    )
    logger.info("Sentry initialized")
    return True
