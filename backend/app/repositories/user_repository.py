# backend/app/repositories/user_repository.py
"""
Repository for users and their tier configuration.
"""

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.user import AccountTierConfig, User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Data access for users and the tier contact matrix."""

    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_tier_config(self, tier: str) -> Optional[AccountTierConfig]:
        try:
            return self.db.get(AccountTierConfig, tier)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load tier config %s: %s", tier, str(exc))
            raise RepositoryException(f"Failed to load tier config: {exc}") from exc

    def set_tier(self, user_id: str, tier: str) -> bool:
        """Set a user's tier; returns False when the user does not exist."""
        try:
            result = self.db.execute(update(User).where(User.id == user_id).values(tier=tier))
            self.db.flush()
            return bool(result.rowcount)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to set tier for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to set tier: {exc}") from exc


__all__ = ["UserRepository"]
