import os

# Keep the application engine off Postgres during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator
from uuid import uuid4

from casework.main import app
from casework.database import get_db, Base
from casework.auth.models import User, UserRole
from casework.auth.security import create_access_token
from casework.cases.models import CaseRecord, CaseStatus, RecordType
from casework.shared.models import utcnow

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database and session for each test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestingSessionLocal = sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with TestingSessionLocal() as session:
        yield session

    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Client for testing API endpoints."""
    # Override the get_db dependency to use our test session
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory for actors with a given role."""
    async def _make(role: UserRole = UserRole.ANALYST, is_verifier: bool = False,
                    max_concurrent: int = 3, name: str = "user") -> User:
        user = User(
            email=f"{name}_{uuid4().hex[:8]}@casework.test",
            full_name=name,
            role=role,
            is_active=True,
            is_verifier=is_verifier,
            verifier_max_concurrent=max_concurrent,
        )
        db_session.add(user)
        await db_session.commit()
        return user
    return _make


@pytest.fixture
def make_case(db_session: AsyncSession):
    """Factory for case records placed directly in a given status."""
    async def _make(submitter: User, status: CaseStatus = CaseStatus.PENDING_REVIEW,
                    record_type: RecordType = RecordType.INCIDENT, fields: dict = None) -> CaseRecord:
        case = CaseRecord(
            record_type=record_type,
            title="Test case",
            fields=fields if fields is not None else {
                "subject_name": "Jane Doe",
                "incident_date": "2024-01-01",
                "city": "Newark",
                "summary": "Original summary",
                "cause_of_death": "Unknown",
            },
            status=status,
            verified=status == CaseStatus.VERIFIED,
            submitted_by=submitter.id,
            submitted_at=utcnow(),
            review_cycle=1,
        )
        db_session.add(case)
        await db_session.commit()
        return case
    return _make


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers
