# backend/app/repositories/__init__.py
"""
Repository layer for the meetings and ledger backend.

Usage:
    from app.repositories import RepositoryFactory

    ledger = RepositoryFactory.create_ledger_repository(db)
    wallet = ledger.get_or_create_wallet(user_id)
"""

from .base_repository import BaseRepository, IRepository
from .factory import RepositoryFactory

__all__ = ["BaseRepository", "IRepository", "RepositoryFactory"]
