"""Integration tests for the SQLAlchemy account store."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.exceptions import InvalidState, StoreUnavailable
from app.db.base import Base
from app.models.totp import BackupCode, TwoFactorSecret
from app.models.user import User
from app.repositories.account_store import (
    Active,
    Disabled,
    PendingVerification,
    SQLAlchemyAccountStore,
)
from app.services.enrollment import EnrollmentService
from app.services.step_up import StepUpGate
from app.services.totp import TOTPService

HASHES = ["a" * 64, "b" * 64, "c" * 64]


@pytest.fixture
def store(db_session) -> SQLAlchemyAccountStore:
    return SQLAlchemyAccountStore(db_session)


async def two_factor_flag(db_session, user_id) -> bool:
    result = await db_session.execute(
        select(User.two_factor_enabled)
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
class TestStateTransitions:
    """Conditional writes against a real database."""

    async def test_state_is_disabled_without_rows(self, store, test_user):
        assert isinstance(await store.get_enrollment_state(test_user.id), Disabled)

    async def test_get_user(self, store, test_user):
        user = await store.get_user(test_user.id)
        assert user is not None and user.email == "test@example.com"

    async def test_write_pending_and_read_back(self, store, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "ciphertext", HASHES, t0)

        state = await store.get_enrollment_state(test_user.id)
        assert isinstance(state, PendingVerification)
        assert state.encrypted_secret == "ciphertext"
        assert state.created_at == t0
        assert state.backup_hashes == tuple(HASHES)

    async def test_write_pending_replaces_previous(self, store, db_session, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "first", HASHES, t0)
        await store.write_pending_enrollment(test_user.id, "second", ["d" * 64], t0)

        state = await store.get_enrollment_state(test_user.id)
        assert state.encrypted_secret == "second"
        assert state.backup_hashes == ("d" * 64,)

        secrets = (await db_session.execute(select(TwoFactorSecret))).scalars().all()
        assert len(secrets) == 1

    async def test_commit_enrollment_once(self, store, db_session, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "ciphertext", HASHES, t0)

        assert await store.commit_enrollment(test_user.id, 100, t0)
        assert not await store.commit_enrollment(test_user.id, 101, t0)

        state = await store.get_enrollment_state(test_user.id)
        assert isinstance(state, Active)
        assert state.last_used_step == 100
        assert state.enabled_at == t0
        assert state.backup_codes_remaining == 3
        assert await two_factor_flag(db_session, test_user.id) is True

    async def test_commit_without_pending(self, store, test_user, t0):
        assert not await store.commit_enrollment(test_user.id, 100, t0)

    async def test_write_pending_when_active_raises(self, store, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "ciphertext", HASHES, t0)
        await store.commit_enrollment(test_user.id, 100, t0)

        with pytest.raises(InvalidState):
            await store.write_pending_enrollment(test_user.id, "other", HASHES, t0)

    async def test_discard_respects_older_than(self, store, db_session, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "ciphertext", HASHES, t0)

        assert not await store.discard_pending_enrollment(test_user.id, older_than=t0)
        assert await store.discard_pending_enrollment(
            test_user.id, older_than=t0 + timedelta(seconds=1)
        )

        assert isinstance(await store.get_enrollment_state(test_user.id), Disabled)
        codes = (await db_session.execute(select(BackupCode))).scalars().all()
        assert codes == []

    async def test_discard_leaves_active_alone(self, store, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "ciphertext", HASHES, t0)
        await store.commit_enrollment(test_user.id, 100, t0)

        assert not await store.discard_pending_enrollment(test_user.id)
        assert isinstance(await store.get_enrollment_state(test_user.id), Active)

    async def test_clear_enrollment(self, store, db_session, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "ciphertext", HASHES, t0)
        await store.commit_enrollment(test_user.id, 100, t0)

        await store.clear_enrollment(test_user.id)

        assert isinstance(await store.get_enrollment_state(test_user.id), Disabled)
        assert await two_factor_flag(db_session, test_user.id) is False
        assert (await db_session.execute(select(BackupCode))).scalars().all() == []


@pytest.mark.asyncio
class TestSingleUseWrites:
    """Backup codes and time-steps are accepted at most once."""

    async def _activate(self, store, user_id, t0):
        await store.write_pending_enrollment(user_id, "ciphertext", HASHES, t0)
        await store.commit_enrollment(user_id, 100, t0)

    async def test_mark_backup_code_used_once(self, store, test_user, t0):
        await self._activate(store, test_user.id, t0)

        assert await store.mark_backup_code_used(test_user.id, HASHES[0], t0)
        assert not await store.mark_backup_code_used(test_user.id, HASHES[0], t0)
        assert not await store.mark_backup_code_used(test_user.id, "e" * 64, t0)

        state = await store.get_enrollment_state(test_user.id)
        assert state.backup_codes_remaining == 2
        assert state.backup_codes[0].used is True

    async def test_backup_codes_unusable_while_pending(self, store, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "ciphertext", HASHES, t0)

        assert not await store.mark_backup_code_used(test_user.id, HASHES[0], t0)

    async def test_record_step_only_moves_forward(self, store, test_user, t0):
        await self._activate(store, test_user.id, t0)

        assert not await store.record_step(test_user.id, 100, t0)
        assert not await store.record_step(test_user.id, 99, t0)
        assert await store.record_step(test_user.id, 101, t0)

        state = await store.get_enrollment_state(test_user.id)
        assert state.last_used_step == 101

    async def test_replace_backup_codes(self, store, test_user, t0):
        await self._activate(store, test_user.id, t0)
        await store.mark_backup_code_used(test_user.id, HASHES[0], t0)

        assert await store.replace_backup_codes(test_user.id, ["f" * 64, "0" * 64])

        state = await store.get_enrollment_state(test_user.id)
        assert [code.code_hash for code in state.backup_codes] == ["f" * 64, "0" * 64]
        assert state.backup_codes_remaining == 2
        assert not await store.mark_backup_code_used(test_user.id, HASHES[1], t0)

    async def test_replace_backup_codes_requires_active(self, store, test_user, t0):
        await store.write_pending_enrollment(test_user.id, "ciphertext", HASHES, t0)

        assert not await store.replace_backup_codes(test_user.id, ["f" * 64])


@pytest.mark.asyncio
async def test_two_sessions_confirming_pick_one_winner(tmp_path, t0):
    """Two requests on separate connections both see pending; one update wins."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'confirm.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_maker() as setup:
            user = User(email="race@example.com", hashed_password="x")
            setup.add(user)
            await setup.flush()
            await SQLAlchemyAccountStore(setup).write_pending_enrollment(
                user.id, "ciphertext", HASHES, t0
            )
            await setup.commit()

        async with session_maker() as first, session_maker() as second:
            first_store = SQLAlchemyAccountStore(first)
            second_store = SQLAlchemyAccountStore(second)

            # Both requests read the enrollment before either writes
            assert isinstance(await first_store.get_enrollment_state(user.id), PendingVerification)
            assert isinstance(await second_store.get_enrollment_state(user.id), PendingVerification)

            first_won = await first_store.commit_enrollment(user.id, 100, t0)
            await first.commit()
            second_won = await second_store.commit_enrollment(user.id, 101, t0)
            await second.commit()

        assert (first_won, second_won) == (True, False)

        async with session_maker() as check:
            state = await SQLAlchemyAccountStore(check).get_enrollment_state(user.id)
            assert isinstance(state, Active)
            assert state.last_used_step == 100
            assert len((await check.execute(select(TwoFactorSecret))).scalars().all()) == 1
            assert await two_factor_flag(check, user.id) is True
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_database_errors_become_store_unavailable(store, test_user, monkeypatch):
    monkeypatch.setattr(
        store.db,
        "execute",
        AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("database is locked"))),
    )

    with pytest.raises(StoreUnavailable):
        await store.get_enrollment_state(test_user.id)


@pytest.mark.asyncio
async def test_full_lifecycle_on_database(store, test_user, t0):
    """Enrollment, step-up and disable through the services on a real store."""
    enrollment = EnrollmentService(store)
    gate = StepUpGate(store, enrollment)

    start = await enrollment.begin_enrollment(test_user.id, now=t0)
    assert "test%40example.com" in start.provisioning_uri

    secret = TOTPService.decode_secret(start.secret)
    step = TOTPService.time_step(t0)
    assert await enrollment.confirm_enrollment(
        test_user.id, TOTPService.compute_code(secret, step), now=t0
    )
    assert await gate.is_second_factor_required(test_user.id, now=t0)

    later = t0 + timedelta(minutes=1)
    code = TOTPService.compute_code(secret, TOTPService.time_step(later))
    assert await gate.verify_second_factor(test_user.id, code, now=later)
    assert not await gate.verify_second_factor(test_user.id, code, now=later)

    assert await gate.verify_second_factor(test_user.id, start.backup_codes[0], True, now=later)
    assert not await gate.verify_second_factor(test_user.id, start.backup_codes[0], True, now=later)

    await enrollment.disable(test_user.id, now=later)
    assert not await gate.is_second_factor_required(test_user.id, now=later)
