# This project was developed with assistance from AI tools.
"""Tests for the medical certification workflow."""

import pytest
from db import ApplicationStatusChange, Notification
from db.enums import MedicalCertificationStatus, UserRole
from sqlalchemy import select

from src.core.errors import ValidationError
from src.services import certification
from src.services.application import get_application
from src.services.audit import count_events
from tests.factories import create_application, create_blob, create_user, make_upload


async def _certification_changes(session) -> list[ApplicationStatusChange]:
    stmt = select(ApplicationStatusChange).order_by(ApplicationStatusChange.id)
    changes = (await session.execute(stmt)).unique().scalars().all()
    return [c for c in changes if c.change_data.get("change_type") == "medical_certification"]


@pytest.fixture
async def admin(session):
    return await create_user(session, role=UserRole.ADMIN)


@pytest.fixture
async def application(session):
    user = await create_user(session)
    application = await create_application(
        session, user, medical_certification_status=MedicalCertificationStatus.REQUESTED
    )
    await session.commit()
    return application


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


async def test_request_increments_count_and_notifies(session, admin):
    user = await create_user(session)
    application = await create_application(session, user)

    await certification.request_certification(session, application, actor=admin)
    await certification.request_certification(session, application, actor=admin)

    assert application.medical_certification_status == MedicalCertificationStatus.REQUESTED
    assert application.medical_certification_request_count == 2
    assert application.medical_certification_requested_at is not None

    changes = await _certification_changes(session)
    assert [(c.from_status, c.to_status) for c in changes] == [
        ("not_requested", "requested"),
        ("requested", "requested"),
    ]
    assert changes[1].change_data["request_count"] == 2
    assert await count_events(session, action="medical_certification_requested") == 2
    notifications = (
        await session.execute(
            select(Notification).where(Notification.action == "medical_certification_requested")
        )
    ).unique().scalars().all()
    assert len(notifications) == 2


async def test_request_requires_provider_email(session):
    user = await create_user(session)
    application = await create_application(session, user, provider_email=None)

    with pytest.raises(ValidationError, match="Medical provider email is required"):
        await certification.request_certification(session, application)
    assert application.medical_certification_status == MedicalCertificationStatus.NOT_REQUESTED


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


async def test_cannot_reset_to_not_requested(session, application, admin):
    with pytest.raises(ValidationError, match="not_requested"):
        await certification.update_certification(
            session, application.id, MedicalCertificationStatus.NOT_REQUESTED, actor=admin
        )


async def test_rejection_requires_reason(session, application, admin):
    application_id = application.id
    with pytest.raises(ValidationError, match="Rejection reason is required"):
        await certification.update_certification(
            session, application_id, MedicalCertificationStatus.REJECTED, actor=admin
        )

    reloaded = await get_application(session, application_id)
    assert reloaded.medical_certification_status == MedicalCertificationStatus.REQUESTED


async def test_rejection_with_reason_needs_no_file(session, application, admin):
    updated = await certification.update_certification(
        session,
        application.id,
        MedicalCertificationStatus.REJECTED,
        actor=admin,
        rejection_reason="Form is unsigned",
        submission_method="email",
    )

    assert updated.medical_certification_status == MedicalCertificationStatus.REJECTED
    assert updated.medical_certification_rejection_reason == "Form is unsigned"
    assert updated.medical_certification is None

    change = (await _certification_changes(session))[-1]
    assert change.change_data["reason"] == "Form is unsigned"
    assert change.change_data["submission_method"] == "email"
    actions = (await session.execute(select(Notification.action))).scalars().all()
    assert "medical_certification_rejected" in actions


async def test_received_with_file_uploads_document(session, application, admin, fake_storage):
    updated = await certification.update_certification(
        session,
        application.id,
        MedicalCertificationStatus.RECEIVED,
        actor=admin,
        file=make_upload(filename="certification.pdf"),
    )

    assert updated.medical_certification_status == MedicalCertificationStatus.RECEIVED
    assert updated.medical_certification.filename == "certification.pdf"
    assert updated.medical_certification.key in fake_storage.objects

    change = (await _certification_changes(session))[-1]
    assert change.change_data["uploaded"] is True
    assert change.to_status == "received"


async def test_approve_existing_document_is_status_only(session, admin):
    user = await create_user(session)
    application = await create_application(
        session,
        user,
        medical_certification_status=MedicalCertificationStatus.RECEIVED,
        medical_certification=await create_blob(session, filename="certification.pdf"),
    )
    await session.commit()

    updated = await certification.update_certification(
        session, application.id, MedicalCertificationStatus.APPROVED, actor=admin
    )

    assert updated.medical_certification_status == MedicalCertificationStatus.APPROVED
    assert updated.medical_certification_verified_by_id == admin.id
    assert updated.medical_certification_verified_at is not None
    change = (await _certification_changes(session))[-1]
    assert change.change_data["uploaded"] is False


async def test_approve_without_document_fails(session, application, admin):
    application_id = application.id
    with pytest.raises(ValidationError, match="certification document is required"):
        await certification.update_certification(
            session, application_id, MedicalCertificationStatus.APPROVED, actor=admin
        )

    reloaded = await get_application(session, application_id)
    assert reloaded.medical_certification_status == MedicalCertificationStatus.REQUESTED
    assert await _certification_changes(session) == []


async def test_unknown_application(session, admin):
    with pytest.raises(ValidationError, match="not found"):
        await certification.update_certification(
            session, 9999, MedicalCertificationStatus.RECEIVED, actor=admin
        )
