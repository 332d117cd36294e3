# This project was developed with assistance from AI tools.
"""Tests for the job outbox runner."""

from db import Job, Notification
from db.enums import DeliveryStatus, JobStatus, UserRole
from sqlalchemy import select

from src.services import jobs
from src.services.notification import create_and_deliver
from src.services.notification_composer import NotificationAction
from tests.factories import create_application, create_user


async def _load(session_factory, model, row_id):
    async with session_factory() as fresh:
        return await fresh.get(model, row_id)


async def test_deliver_job_completes(session, session_factory, fake_mailer):
    user = await create_user(session)
    application = await create_application(session, user)
    notification = await create_and_deliver(
        session, action=NotificationAction.VOUCHER_ASSIGNED, recipient=user, notifiable=application
    )
    await session.commit()
    job_id = (await session.execute(select(Job.id))).scalar_one()
    await session.commit()

    assert await jobs.run_pending_jobs(session_factory) == 1

    job = await _load(session_factory, Job, job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 1
    assert job.completed_at is not None
    stored = await _load(session_factory, Notification, notification.id)
    assert stored.delivery_status == DeliveryStatus.SENT
    assert len(fake_mailer.sent) == 1


async def test_failing_handler_retries_then_fails(session, session_factory, monkeypatch):
    calls = []

    async def _explode(session, payload):
        calls.append(payload)
        raise RuntimeError("boom")

    monkeypatch.setitem(jobs._handlers, "explode", _explode)
    job = jobs.enqueue_job(session, "explode", {"n": 1})
    await session.commit()

    for attempt in range(1, 4):
        assert await jobs.run_pending_jobs(session_factory) == 0
        stored = await _load(session_factory, Job, job.id)
        assert stored.attempts == attempt
        assert stored.last_error == "RuntimeError: boom"

    assert stored.status == JobStatus.FAILED
    assert len(calls) == 3

    # Failed jobs are no longer picked up.
    assert await jobs.run_pending_jobs(session_factory) == 0
    assert len(calls) == 3


async def test_unknown_job_type_is_recorded(session, session_factory):
    job = jobs.enqueue_job(session, "no_such_job", {})
    await session.commit()

    await jobs.run_pending_jobs(session_factory)

    stored = await _load(session_factory, Job, job.id)
    assert stored.status == JobStatus.PENDING
    assert stored.last_error.startswith("LookupError")


async def test_transport_failure_keeps_job_for_retry(session, session_factory, fake_mailer):
    fake_mailer.fail = True
    user = await create_user(session)
    notification = await create_and_deliver(session, action=NotificationAction.PROOF_APPROVED, recipient=user)
    await session.commit()

    assert await jobs.run_pending_jobs(session_factory) == 0

    stored = await _load(session_factory, Notification, notification.id)
    assert stored.delivery_status == DeliveryStatus.ERROR
    async with session_factory() as fresh:
        job = (await fresh.execute(select(Job))).scalar_one()
    assert job.status == JobStatus.PENDING
    assert job.last_error.startswith("DeliveryError")


async def test_notify_admins_job(session, session_factory):
    user = await create_user(session)
    admin = await create_user(session, role=UserRole.ADMIN)
    application = await create_application(session, user)
    jobs.enqueue_job(
        session, jobs.NOTIFY_ADMINS, {"application_id": application.id, "proof_types": ["residency"]}
    )
    await session.commit()

    assert await jobs.run_pending_jobs(session_factory, limit=1) == 1

    async with session_factory() as fresh:
        notification = (await fresh.execute(select(Notification))).unique().scalar_one()
    assert notification.recipient_id == admin.id
    assert notification.action == "proof_submitted"
    assert notification.message == (
        f"New residency documents submitted for application #{application.id} need review."
    )


def test_every_job_type_has_a_handler():
    job_types = [value for name, value in vars(jobs).items() if name.isupper() and isinstance(value, str)]

    assert sorted(job_types) == [jobs.DELIVER_NOTIFICATION, jobs.NOTIFY_ADMINS]
    assert all(jobs.get_handler(job_type) is not None for job_type in job_types)
