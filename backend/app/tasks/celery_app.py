# backend/app/tasks/celery_app.py
"""
Celery application configuration.

This module sets up the Celery app with Redis as the broker, configures task
serialization and registers the side-effect delivery tasks.
"""

import os
from typing import Any

from celery import Celery
from celery.signals import setup_logging

from app.core.config import settings

DISPATCH_INTERVAL_SECONDS = 30.0


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    # Priority: CELERY_BROKER_URL -> settings.redis_url
    broker_url = os.getenv("CELERY_BROKER_URL") or settings.redis_url
    result_backend = os.getenv("CELERY_RESULT_BACKEND") or broker_url

    celery_app = Celery(
        "matchindeed",
        broker=broker_url,
        backend=result_backend,
    )

    celery_app.conf.update(
        {
            # Task settings
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            # Worker settings
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            # Task execution settings
            "task_soft_time_limit": 120,
            "task_time_limit": 300,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "worker_hijack_root_logger": False,
            "broker_transport_options": {"visibility_timeout": 3600},
        }
    )

    celery_app.conf.imports = ("app.tasks.side_effect_tasks",)
    celery_app.conf.task_routes = {"side_effects.*": {"queue": "side_effects"}}
    celery_app.conf.beat_schedule = {
        "dispatch-side-effects": {
            "task": "side_effects.dispatch_pending",
            "schedule": DISPATCH_INTERVAL_SECONDS,
        }
    }

    return celery_app


# Disable Celery's default logging configuration
@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    import logging

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


# Create the Celery app instance
celery_app = create_celery_app()
