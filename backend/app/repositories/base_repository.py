# backend/app/repositories/base_repository.py
"""
Base Repository Pattern for the meetings and ledger backend.

Repositories own SQL; services own transactions. Nothing here commits: the
service layer wraps calls in ``BaseService.transaction()``.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.database.session_utils import get_dialect_name

from ..core.exceptions import RepositoryException

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class IRepository(ABC, Generic[T]):
    """Core data access contract shared by every repository."""

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an entity by primary key, or None."""

    @abstractmethod
    def create(self, **kwargs: Any) -> T:
        """Create and flush a new entity."""

    @abstractmethod
    def exists(self, **kwargs: Any) -> bool:
        """Check whether an entity matches the given criteria."""


class BaseRepository(IRepository[T]):
    """
    Concrete base repository with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def get_by_id(self, id: str) -> Optional[T]:
        try:
            return self.db.get(self.model, id)
        except SQLAlchemyError as e:
            self.logger.error("Error getting %s by id %s: %s", self.model.__name__, id, e)
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {e}") from e

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, exc)
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error("Error creating %s: %s", self.model.__name__, e)
            raise RepositoryException(f"Failed to create {self.model.__name__}: {e}") from e

    def flush(self) -> None:
        """Flush pending ORM changes."""
        self.db.flush()

    def exists(self, **kwargs: Any) -> bool:
        try:
            return self.db.query(self.model).filter_by(**kwargs).first() is not None
        except SQLAlchemyError as e:
            self.logger.error("Error checking existence: %s", e)
            raise RepositoryException(f"Failed to check existence: {e}") from e

    def find_by(self, **kwargs: Any) -> List[T]:
        try:
            return self.db.query(self.model).filter_by(**kwargs).all()
        except SQLAlchemyError as e:
            self.logger.error("Error finding by criteria: %s", e)
            raise RepositoryException(f"Failed to find records: {e}") from e

    def find_one_by(self, **kwargs: Any) -> Optional[T]:
        try:
            return self.db.query(self.model).filter_by(**kwargs).first()
        except SQLAlchemyError as e:
            self.logger.error("Error finding one by criteria: %s", e)
            raise RepositoryException(f"Failed to find record: {e}") from e
