# This project was developed with assistance from AI tools.
"""Tests for voucher, evaluator and trainer assignment."""

import asyncio
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest
import pytest_asyncio
from db import Evaluation, Job, Notification, TrainingSession, Voucher
from db.database import Base
from db.enums import (
    ApplicationStatus,
    MedicalCertificationStatus,
    SessionStatus,
    UserRole,
    VoucherStatus,
)
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.core.config import settings
from src.services import assignment
from src.services.audit import count_events
from src.services.jobs import DELIVER_NOTIFICATION
from tests.factories import create_application, create_user


async def _count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.fixture
async def admin(session):
    return await create_user(session, role=UserRole.ADMIN)


@pytest.fixture
async def approved_application(session):
    user = await create_user(session)
    application = await create_application(
        session,
        user,
        status=ApplicationStatus.APPROVED,
        medical_certification_status=MedicalCertificationStatus.APPROVED,
    )
    await session.commit()
    return application


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_voucher_code_shape():
    code = assignment.generate_voucher_code()
    assert len(code) == 12
    assert set(code) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789")


@pytest.mark.parametrize(
    "start,months,expected",
    [
        (datetime(2026, 3, 15, tzinfo=UTC), 6, datetime(2026, 9, 15, tzinfo=UTC)),
        (datetime(2026, 1, 31, tzinfo=UTC), 1, datetime(2026, 2, 28, tzinfo=UTC)),
        (datetime(2027, 8, 31, tzinfo=UTC), 6, datetime(2028, 2, 29, tzinfo=UTC)),
        (datetime(2026, 11, 30, tzinfo=UTC), 2, datetime(2027, 1, 30, tzinfo=UTC)),
    ],
)
def test_add_months_clamps_day(start, months, expected):
    assert assignment.add_months(start, months) == expected


# ---------------------------------------------------------------------------
# Voucher
# ---------------------------------------------------------------------------


async def test_assign_voucher(session, approved_application, admin):
    voucher = await assignment.assign_voucher(session, approved_application.id, actor=admin)

    assert voucher is not None
    assert voucher.status == VoucherStatus.ACTIVE
    assert len(voucher.code) == 12
    assert voucher.initial_value == Decimal("500")
    assert voucher.remaining_value == voucher.initial_value
    assert voucher.expires_at == assignment.add_months(voucher.issued_at, 6)

    event = await count_events(session, action="voucher_assigned", application_id=approved_application.id)
    assert event == 1
    notification = (await session.execute(select(Notification))).unique().scalar_one()
    assert notification.action == "voucher_assigned"
    assert notification.notification_data["voucher_code"] == voucher.code


async def test_second_voucher_is_refused(session, approved_application):
    application_id = approved_application.id
    assert await assignment.assign_voucher(session, application_id) is not None
    assert await assignment.assign_voucher(session, application_id) is None
    assert await _count(session, Voucher) == 1


@pytest.mark.parametrize(
    "status,certification",
    [
        (ApplicationStatus.IN_PROGRESS, MedicalCertificationStatus.APPROVED),
        (ApplicationStatus.APPROVED, MedicalCertificationStatus.RECEIVED),
    ],
)
async def test_ineligible_application_gets_no_voucher(session, status, certification, caplog):
    user = await create_user(session)
    application = await create_application(
        session, user, status=status, medical_certification_status=certification
    )
    await session.commit()

    assert await assignment.assign_voucher(session, application.id) is None
    assert await _count(session, Voucher) == 0
    assert "not eligible for a voucher" in caplog.text


async def test_unknown_application_gets_no_voucher(session):
    assert await assignment.assign_voucher(session, 4242) is None


# ---------------------------------------------------------------------------
# Evaluator / trainer
# ---------------------------------------------------------------------------


async def test_assign_evaluator(session, approved_application, admin):
    evaluator = await create_user(session, role=UserRole.EVALUATOR, first_name="Sam", last_name="Evans")
    await session.commit()

    evaluation = await assignment.assign_evaluator(
        session, approved_application.id, evaluator, actor=admin
    )

    assert evaluation.status == SessionStatus.REQUESTED
    assert evaluation.constituent_id == approved_application.user_id
    assert await count_events(session, action="evaluator_assigned") == 1

    notifications = (await session.execute(select(Notification))).unique().scalars().all()
    assert {n.recipient_id for n in notifications} == {approved_application.user_id, evaluator.id}
    jobs = (await session.execute(select(Job))).scalars().all()
    assert [j.job_type for j in jobs] == [DELIVER_NOTIFICATION]


async def test_evaluator_needs_evaluator_role(session, approved_application):
    constituent = await create_user(session)
    await session.commit()

    assert await assignment.assign_evaluator(session, approved_application.id, constituent) is None
    assert await _count(session, Evaluation) == 0


async def test_assign_trainer(session, approved_application, admin):
    trainer = await create_user(session, role=UserRole.TRAINER, first_name="Pat", last_name="Trainer")
    await session.commit()

    training = await assignment.assign_trainer(session, approved_application.id, trainer, actor=admin)

    assert training.trainer_id == trainer.id
    assert training.status == SessionStatus.REQUESTED
    notifications = (
        await session.execute(select(Notification).order_by(Notification.id))
    ).unique().scalars().all()
    assert [n.action for n in notifications] == ["trainer_assigned", "trainer_assigned"]
    assert notifications[1].notification_data["trainer_name"] == "Pat Trainer"
    assert await _count(session, Job) == 1


async def test_trainer_needs_trainer_role(session, approved_application):
    evaluator = await create_user(session, role=UserRole.EVALUATOR)
    await session.commit()

    assert await assignment.assign_trainer(session, approved_application.id, evaluator) is None
    assert await _count(session, TrainingSession) == 0


# ---------------------------------------------------------------------------
# One voucher per application
# ---------------------------------------------------------------------------


async def test_repeated_attempts_from_separate_sessions_issue_one_voucher(session_factory, approved_application):
    application_id = approved_application.id
    results = []
    for _ in range(5):
        async with session_factory() as attempt:
            results.append(await assignment.assign_voucher(attempt, application_id))

    assert sum(r is not None for r in results) == 1
    async with session_factory() as fresh:
        assert await _count(fresh, Voucher) == 1


async def test_unique_constraint_backs_the_eligibility_check(session, approved_application, monkeypatch):
    application_id = approved_application.id
    assert await assignment.assign_voucher(session, application_id) is not None

    async def _stale_count(_session, _application_id):
        return 0

    monkeypatch.setattr(assignment, "_voucher_count", _stale_count)

    assert await assignment.assign_voucher(session, application_id) is None
    assert await _count(session, Voucher) == 1


async def test_lock_conflict_returns_none(session, approved_application, caplog):
    application_id = approved_application.id

    async def _locked(_session, _application_id):
        raise OperationalError("SELECT count(vouchers.id)", {}, Exception("database is locked"))

    with patch.object(assignment, "_voucher_count", _locked):
        assert await assignment.assign_voucher(session, application_id) is None

    assert "database is locked" in caplog.text
    assert await assignment.assign_voucher(session, application_id) is not None


async def _race_for_voucher(factory, application_id, attempts=5):
    async def _attempt():
        async with factory() as attempt_session:
            return await assignment.assign_voucher(attempt_session, application_id)

    return await asyncio.gather(*(_attempt() for _ in range(attempts)))


async def test_concurrent_attempts_issue_one_voucher(session_factory, approved_application):
    results = await _race_for_voucher(session_factory, approved_application.id)

    assert sum(r is not None for r in results) == 1
    async with session_factory() as fresh:
        assert await _count(fresh, Voucher) == 1


@pytest_asyncio.fixture
async def postgres_factory():
    engine = create_async_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.mark.postgres
async def test_row_lock_serializes_concurrent_vouchers(postgres_factory):
    async with postgres_factory() as setup:
        user = await create_user(setup)
        application = await create_application(
            setup,
            user,
            status=ApplicationStatus.APPROVED,
            medical_certification_status=MedicalCertificationStatus.APPROVED,
        )
        await setup.commit()
        application_id = application.id

    results = await _race_for_voucher(postgres_factory, application_id)

    assert sum(r is not None for r in results) == 1
    async with postgres_factory() as fresh:
        assert await _count(fresh, Voucher) == 1
