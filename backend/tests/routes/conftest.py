from typing import Callable, Dict, Iterator

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from app.api.dependencies.database import get_db
from app.main import create_app
from app.models.user import User


@pytest.fixture
def client(db: Session) -> Iterator[TestClient]:
    """API client whose requests all run against the test session."""
    app = create_app()

    def _override_get_db() -> Iterator[Session]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_as() -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        return {"X-User-Id": user.id}

    return _headers
