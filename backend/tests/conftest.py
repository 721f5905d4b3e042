"""
Pytest configuration and fixtures
"""
import os
import sys
import tempfile
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Settings are cached on first use, so the test database must be chosen before any app import
_test_db_dir = tempfile.mkdtemp(prefix="prompt-library-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_test_db_dir) / 'test.db'}"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FILE_ENABLED", "false")

from app.core.compound_types import ComponentRef
from app.core.database import Base, get_engine, get_session_local
from app.core.rate_limit import get_public_api_limiter
from app.models.prompt import PromptStatus
from app.services.prompt_service import PromptService


@pytest.fixture(scope="function")
def db() -> Session:
    """Database session on a freshly created schema"""
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = get_session_local()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Every test starts with an empty public API rate window"""
    get_public_api_limiter().reset()
    yield
    get_public_api_limiter().reset()


@pytest.fixture(scope="function")
def client(db: Session):
    """Test client with the database dependency bound to the test session"""
    from fastapi.testclient import TestClient

    from app.core.database import get_db
    from main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def prompt_service(db: Session) -> PromptService:
    return PromptService(db)


@pytest.fixture
def make_prompt(prompt_service: PromptService):
    """Create an approved leaf prompt"""

    def _make(title: str, text: str, category: str = "Writing", tags=(), status=PromptStatus.APPROVED):
        return prompt_service.create_prompt(
            title=title,
            prompt_text=text,
            category=category,
            author_name="Tester",
            tags=tags,
            status=status,
        )

    return _make


@pytest.fixture
def make_compound(prompt_service: PromptService):
    """Create an approved compound prompt from (prompt_id, before, after) slots"""

    async def _make(title: str, slots, max_depth=None, category: str = "Writing", status=PromptStatus.APPROVED):
        components = [
            ComponentRef(position=i, component_prompt_id=pid, text_before=before, text_after=after)
            for i, (pid, before, after) in enumerate(slots)
        ]
        return await prompt_service.create_compound_prompt(
            title=title,
            category=category,
            author_name="Tester",
            components=components,
            max_depth=max_depth,
            status=status,
        )

    return _make
