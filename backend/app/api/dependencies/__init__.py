# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import get_current_user, require_admin
from .database import get_db
from .services import (
    get_ledger_service,
    get_meeting_service,
    get_payment_ingestion_service,
    get_wallet_admin_service,
)

__all__ = [
    # Auth
    "get_current_user",
    "require_admin",
    # Database
    "get_db",
    # Services
    "get_ledger_service",
    "get_meeting_service",
    "get_payment_ingestion_service",
    "get_wallet_admin_service",
]
