"""Pytest configuration and fixtures."""

import asyncio
import os
import uuid
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

# Settings are read at import time; tests always run against in-memory SQLite
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-expense-tracker-suite")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.exceptions import InvalidState
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.repositories.account_store import (
    AccountStore,
    Active,
    Disabled,
    EnrollmentState,
    PendingVerification,
    StoredBackupCode,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# A fixed instant on a step boundary (step 59200000 with a 30s period)
T0 = datetime.fromtimestamp(59_200_000 * 30, UTC)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async with session_maker() as session:
        yield session


@pytest.fixture(scope="function")
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create test client. Each request gets its own session, as in production."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
async def test_user(db_session: AsyncSession):
    """Create a test user."""
    from app.core.security import get_password_hash
    from app.models.user import User

    user = User(
        email="test@example.com",
        full_name="Test User",
        hashed_password=get_password_hash("testpassword123"),
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@dataclass
class _Account:
    id: uuid.UUID
    email: str
    two_factor_enabled: bool = False


@dataclass
class _Enrollment:
    encrypted_secret: str
    created_at: datetime
    codes: list[list] = field(default_factory=list)
    active: bool = False
    enabled_at: datetime | None = None
    last_used_at: datetime | None = None
    last_used_step: int | None = None


class InMemoryAccountStore(AccountStore):
    """Account store kept in a dict.

    Every operation yields to the event loop before taking the lock, so
    requests run with asyncio.gather interleave the way concurrent HTTP
    requests do.
    """

    def __init__(self):
        self.accounts: dict[uuid.UUID, _Account] = {}
        self.enrollments: dict[uuid.UUID, _Enrollment] = {}
        self.lock = asyncio.Lock()
        self.fail_with: Exception | None = None

    def add_account(self, email: str = "user@example.com") -> uuid.UUID:
        account = _Account(id=uuid.uuid4(), email=email)
        self.accounts[account.id] = account
        return account.id

    async def _enter(self) -> None:
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with

    async def get_user(self, user_id):
        await self._enter()
        return self.accounts.get(user_id)

    async def get_enrollment_state(self, user_id) -> EnrollmentState:
        await self._enter()
        enrollment = self.enrollments.get(user_id)
        if enrollment is None:
            return Disabled()
        if not enrollment.active:
            return PendingVerification(
                encrypted_secret=enrollment.encrypted_secret,
                created_at=enrollment.created_at,
                backup_hashes=tuple(code_hash for code_hash, _ in enrollment.codes),
            )
        return Active(
            encrypted_secret=enrollment.encrypted_secret,
            backup_codes=tuple(StoredBackupCode(h, used) for h, used in enrollment.codes),
            enabled_at=enrollment.enabled_at,
            last_used_at=enrollment.last_used_at,
            last_used_step=enrollment.last_used_step,
        )

    async def write_pending_enrollment(
        self,
        user_id,
        encrypted_secret: str,
        backup_hashes: Sequence[str],
        created_at: datetime,
    ) -> None:
        await self._enter()
        async with self.lock:
            current = self.enrollments.get(user_id)
            if current is not None and current.active:
                raise InvalidState()
            self.enrollments[user_id] = _Enrollment(
                encrypted_secret=encrypted_secret,
                created_at=created_at,
                codes=[[code_hash, False] for code_hash in backup_hashes],
            )

    async def commit_enrollment(self, user_id, step: int, now: datetime) -> bool:
        await self._enter()
        async with self.lock:
            enrollment = self.enrollments.get(user_id)
            if enrollment is None or enrollment.active:
                return False
            enrollment.active = True
            enrollment.enabled_at = now
            enrollment.last_used_at = now
            enrollment.last_used_step = step
            self.accounts[user_id].two_factor_enabled = True
            return True

    async def discard_pending_enrollment(self, user_id, older_than=None) -> bool:
        await self._enter()
        async with self.lock:
            enrollment = self.enrollments.get(user_id)
            if enrollment is None or enrollment.active:
                return False
            if older_than is not None and enrollment.created_at >= older_than:
                return False
            del self.enrollments[user_id]
            return True

    async def clear_enrollment(self, user_id) -> None:
        await self._enter()
        async with self.lock:
            self.enrollments.pop(user_id, None)
            self.accounts[user_id].two_factor_enabled = False

    async def mark_backup_code_used(self, user_id, code_hash: str, now: datetime) -> bool:
        await self._enter()
        async with self.lock:
            enrollment = self.enrollments.get(user_id)
            if enrollment is None or not enrollment.active:
                return False
            for code in enrollment.codes:
                if code[0] == code_hash and not code[1]:
                    code[1] = True
                    enrollment.last_used_at = now
                    return True
            return False

    async def record_step(self, user_id, step: int, now: datetime) -> bool:
        await self._enter()
        async with self.lock:
            enrollment = self.enrollments.get(user_id)
            if enrollment is None or not enrollment.active:
                return False
            if enrollment.last_used_step is not None and enrollment.last_used_step >= step:
                return False
            enrollment.last_used_step = step
            enrollment.last_used_at = now
            return True

    async def replace_backup_codes(self, user_id, backup_hashes: Sequence[str]) -> bool:
        await self._enter()
        async with self.lock:
            enrollment = self.enrollments.get(user_id)
            if enrollment is None or not enrollment.active:
                return False
            enrollment.codes = [[code_hash, False] for code_hash in backup_hashes]
            return True


@pytest.fixture
def memory_store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def account_id(memory_store: InMemoryAccountStore) -> uuid.UUID:
    return memory_store.add_account("alice@example.com")
