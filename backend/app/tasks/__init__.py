# backend/app/tasks/__init__.py
"""
Celery tasks package.

Importing it registers the side-effect delivery tasks with the Celery app.
"""

from app.tasks.celery_app import celery_app
from app.tasks.side_effect_tasks import deliver_event, dispatch_pending

__all__ = ["celery_app", "deliver_event", "dispatch_pending"]
