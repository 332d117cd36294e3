# This project was developed with assistance from AI tools.
"""Tests for the application state machine and auto-approval."""

import pytest
from db import Application, ApplicationStatusChange, Event, Job, Notification, Policy
from db.enums import (
    ApplicationStatus,
    MedicalCertificationStatus,
    ProofStatus,
    UserRole,
)
from sqlalchemy import func, select

from src.core.errors import InvalidTransitionError, ValidationError
from src.services import application as app_service
from src.services.audit import count_events
from tests.factories import create_application, create_blob, create_user


async def _status_changes(session, application_id):
    stmt = select(ApplicationStatusChange).where(ApplicationStatusChange.application_id == application_id)
    return (await session.execute(stmt)).unique().scalars().all()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def test_create_application_records_event(session):
    user = await create_user(session)
    application = await app_service.create_application(session, user=user)
    await session.commit()

    assert application.status == ApplicationStatus.DRAFT
    assert application.income_proof_status == ProofStatus.NOT_REVIEWED
    assert await count_events(session, action="application_created", application_id=application.id) == 1


async def test_waiting_period_blocks_reapplication(session):
    user = await create_user(session)
    await app_service.create_application(session, user=user)
    await session.commit()

    with pytest.raises(ValidationError, match="You must wait 3 years"):
        await app_service.create_application(session, user=user)


async def test_waiting_period_policy_zero_disables_check(session):
    session.add(Policy(key="waiting_period_years", value=0))
    user = await create_user(session)
    await app_service.create_application(session, user=user)
    await app_service.create_application(session, user=user)
    await session.commit()

    count = (await session.execute(select(func.count(Application.id)))).scalar_one()
    assert count == 2


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def test_update_status_writes_change_and_event(session):
    user = await create_user(session)
    admin = await create_user(session, role=UserRole.ADMIN)
    application = await create_application(session, user, status=ApplicationStatus.DRAFT)

    await app_service.update_status(session, application, ApplicationStatus.IN_PROGRESS, actor=admin, notes="submitted")
    await session.commit()

    changes = await _status_changes(session, application.id)
    assert [(c.from_status, c.to_status, c.notes) for c in changes] == [("draft", "in_progress", "submitted")]
    events = (await session.execute(select(Event).where(Event.action == "application_status_changed"))).scalars().all()
    assert events[0].event_data["old_status"] == "draft"
    assert events[0].event_data["new_status"] == "in_progress"


async def test_invalid_transition_raises_and_writes_nothing(session):
    user = await create_user(session)
    application = await create_application(session, user, status=ApplicationStatus.DRAFT)

    with pytest.raises(InvalidTransitionError, match="Cannot transition from 'draft' to 'approved'"):
        await app_service.update_status(session, application, ApplicationStatus.APPROVED)

    assert application.status == ApplicationStatus.DRAFT
    assert await _status_changes(session, application.id) == []


def test_invalid_transition_is_a_value_error():
    assert issubclass(InvalidTransitionError, ValueError)


async def test_archived_is_terminal(session):
    user = await create_user(session)
    application = await create_application(session, user, status=ApplicationStatus.ARCHIVED)

    with pytest.raises(InvalidTransitionError, match="terminal"):
        await app_service.approve(session, application)
    with pytest.raises(InvalidTransitionError):
        await app_service.reject(session, application)


async def test_rejected_can_only_be_archived(session):
    user = await create_user(session)
    application = await create_application(session, user, status=ApplicationStatus.REJECTED)

    with pytest.raises(InvalidTransitionError):
        await app_service.update_status(session, application, ApplicationStatus.IN_PROGRESS)
    await app_service.update_status(session, application, ApplicationStatus.ARCHIVED)
    assert application.status == ApplicationStatus.ARCHIVED


async def test_can_edit_only_drafts(session):
    user = await create_user(session)
    draft = await create_application(session, user, status=ApplicationStatus.DRAFT)
    assert app_service.can_edit(draft)
    draft.status = ApplicationStatus.IN_PROGRESS
    assert not app_service.can_edit(draft)


async def test_request_documents_notifies_and_requests_certification(session):
    user = await create_user(session)
    admin = await create_user(session, role=UserRole.ADMIN)
    application = await create_application(
        session,
        user,
        income_proof_status=ProofStatus.APPROVED,
        residency_proof_status=ProofStatus.APPROVED,
    )

    await app_service.request_documents(session, application, actor=admin, notes="Need a signed form")
    await session.commit()

    assert application.status == ApplicationStatus.AWAITING_DOCUMENTS
    assert application.medical_certification_status == MedicalCertificationStatus.REQUESTED
    actions = (await session.execute(select(Notification.action))).scalars().all()
    assert "documents_requested" in actions
    assert "medical_certification_requested" in actions


async def test_awaiting_documents_without_provider_email_logs_and_continues(session, caplog):
    user = await create_user(session)
    application = await create_application(
        session,
        user,
        provider_email=None,
        income_proof_status=ProofStatus.APPROVED,
        residency_proof_status=ProofStatus.APPROVED,
    )

    await app_service.update_status(session, application, ApplicationStatus.AWAITING_DOCUMENTS)

    assert application.status == ApplicationStatus.AWAITING_DOCUMENTS
    assert application.medical_certification_status == MedicalCertificationStatus.NOT_REQUESTED
    assert "Could not auto-request certification" in caplog.text


# ---------------------------------------------------------------------------
# Auto-approval
# ---------------------------------------------------------------------------


async def test_should_auto_approve_predicate(session):
    user = await create_user(session)
    application = await create_application(
        session, user, income_proof_status=ProofStatus.APPROVED, residency_proof_status=ProofStatus.APPROVED
    )
    assert app_service.should_auto_approve(application, ProofStatus.APPROVED)
    assert not app_service.should_auto_approve(application, ProofStatus.REJECTED)

    application.status = ApplicationStatus.APPROVED
    assert not app_service.should_auto_approve(application, ProofStatus.APPROVED)


async def test_perform_auto_approval_is_idempotent(session):
    user = await create_user(session)
    admin = await create_user(session, role=UserRole.ADMIN)
    application = await create_application(
        session,
        user,
        income_proof=await create_blob(session),
        residency_proof=await create_blob(session),
        income_proof_status=ProofStatus.APPROVED,
        residency_proof_status=ProofStatus.APPROVED,
    )
    await session.commit()

    assert await app_service.perform_auto_approval(session, application.id, actor=admin) is True
    assert await app_service.perform_auto_approval(session, application.id, actor=admin) is False
    await session.commit()

    assert application.status == ApplicationStatus.APPROVED
    assert await count_events(session, action="application_auto_approved") == 1
    event = (
        await session.execute(select(Event).where(Event.action == "application_auto_approved"))
    ).scalar_one()
    assert event.event_data["old_status"] == "in_progress"
    assert event.event_data["new_status"] == "approved"
    assert event.event_data["auto_approval"] is True
    assert event.event_data["triggered_by_user_id"] == admin.id

    change = (await _status_changes(session, application.id))[0]
    assert change.notes == app_service.AUTO_APPROVAL_NOTE
    assert change.change_data == {"auto_approval": True}


async def test_auto_approval_skipped_from_draft(session):
    user = await create_user(session)
    application = await create_application(
        session,
        user,
        status=ApplicationStatus.DRAFT,
        income_proof_status=ProofStatus.APPROVED,
        residency_proof_status=ProofStatus.APPROVED,
    )
    await session.commit()

    assert await app_service.perform_auto_approval(session, application.id) is False
    assert application.status == ApplicationStatus.DRAFT


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


async def test_batch_update_status(session):
    user = await create_user(session)
    admin = await create_user(session, role=UserRole.ADMIN)
    first = await create_application(session, user)
    second = await create_application(session, user, status=ApplicationStatus.DRAFT)
    await session.commit()

    updated = await app_service.batch_update_status(
        session, [first.id, second.id], ApplicationStatus.ARCHIVED, actor=admin
    )
    await session.commit()

    assert updated == 2
    statuses = (await session.execute(select(Application.status))).scalars().all()
    assert set(statuses) == {ApplicationStatus.ARCHIVED}
    assert await count_events(session, action="applications_batch_status_updated") == 1
    assert await _status_changes(session, first.id) == []
    assert (await session.execute(select(func.count(Job.id)))).scalar_one() == 0


async def test_batch_update_empty_list(session):
    assert await app_service.batch_update_status(session, [], ApplicationStatus.ARCHIVED) == 0
