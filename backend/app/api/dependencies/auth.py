# backend/app/api/dependencies/auth.py
"""
Caller identity dependencies.

Authentication happens at the gateway, which forwards the authenticated user
id in ``X-User-Id``. These dependencies only resolve that id to a User row.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ...models.user import User
from ...repositories.factory import RepositoryFactory
from .database import get_db

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the authenticated caller.

    Raises:
        HTTPException: 401 when the header is missing or names no user
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authenticated user"
        )

    repository = RepositoryFactory.create_user_repository(db)
    user = await asyncio.to_thread(repository.get_by_id, user_id)
    if user is None:
        logger.warning("Request for unknown user id %s", user_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency that ensures the caller has administrator privileges."""

    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
