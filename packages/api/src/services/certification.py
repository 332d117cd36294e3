# This project was developed with assistance from AI tools.
"""Medical certification workflow.

Certification has its own status column alongside the application status.
Every write produces an ``ApplicationStatusChange`` tagged
``change_type: medical_certification``, a ``medical_certification_*`` event
and a notification, all in the caller's transaction.
"""

import logging

from db import Application, ApplicationStatusChange, User
from db.enums import MedicalCertificationStatus, ProofSubmissionMethod
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import ValidationError
from ..core.timeutil import utcnow
from .application import get_application
from .audit import record_event_safely
from .blobs import ProofFile, resolve_blob
from .notification import create_and_deliver
from .notification_composer import NotificationAction
from .proof_validation import validate_certification_state
from .storage import StorageService, get_storage_service

logger = logging.getLogger(__name__)

CERTIFICATION_ATTACHMENT = "medical_certification"

_STATUS_NOTIFICATIONS = {
    MedicalCertificationStatus.REQUESTED: NotificationAction.MEDICAL_CERTIFICATION_REQUESTED,
    MedicalCertificationStatus.RECEIVED: NotificationAction.MEDICAL_CERTIFICATION_RECEIVED,
    MedicalCertificationStatus.APPROVED: NotificationAction.MEDICAL_CERTIFICATION_APPROVED,
    MedicalCertificationStatus.REJECTED: NotificationAction.MEDICAL_CERTIFICATION_REJECTED,
}


async def _record_change(
    session: AsyncSession,
    application: Application,
    previous: MedicalCertificationStatus | None,
    *,
    actor: User | None,
    action: str,
    notes: str | None = None,
    details: dict | None = None,
) -> None:
    current = application.medical_certification_status
    session.add(
        ApplicationStatusChange(
            application_id=application.id,
            user_id=actor.id if actor else None,
            from_status=previous.value if previous else None,
            to_status=current.value,
            notes=notes,
            change_data={"change_type": "medical_certification", **(details or {})},
        )
    )
    await session.flush()

    await record_event_safely(
        session,
        action=action,
        user_id=actor.id if actor else None,
        application_id=application.id,
        event_data={
            "old_status": previous.value if previous else None,
            "new_status": current.value,
            **(details or {}),
        },
    )
    notification = _STATUS_NOTIFICATIONS.get(current)
    if notification is not None:
        await create_and_deliver(
            session,
            action=notification,
            recipient=application.user,
            actor=actor,
            notifiable=application,
            metadata={k: v for k, v in (details or {}).items() if v is not None},
        )


async def request_certification(
    session: AsyncSession,
    application: Application,
    *,
    actor: User | None = None,
) -> Application:
    """Ask the medical provider for a certification form (flush only)."""
    if not application.medical_provider_email:
        raise ValidationError("Medical provider email is required to request certification")

    previous = application.medical_certification_status
    application.medical_certification_status = MedicalCertificationStatus.REQUESTED
    application.medical_certification_requested_at = utcnow()
    application.medical_certification_request_count = (
        application.medical_certification_request_count or 0
    ) + 1

    await _record_change(
        session,
        application,
        previous,
        actor=actor,
        action="medical_certification_requested",
        notes="Medical certification requested from provider",
        details={
            "provider_name": application.medical_provider_name,
            "provider_email": application.medical_provider_email,
            "request_count": application.medical_certification_request_count,
            "submission_method": "email",
        },
    )
    logger.info(
        "Certification request #%d sent for application %s",
        application.medical_certification_request_count, application.id,
    )
    return application


async def reject_certification(
    session: AsyncSession,
    application: Application,
    *,
    actor: User,
    reason: str,
    submission_method=ProofSubmissionMethod.WEB,
) -> Application:
    """Record a reasoned rejection; no attachment is required (flush only)."""
    if not reason:
        raise ValidationError("Rejection reason is required when rejecting a certification")

    previous = application.medical_certification_status
    application.medical_certification_status = MedicalCertificationStatus.REJECTED
    application.medical_certification_rejection_reason = reason
    application.medical_certification_verified_at = utcnow()
    application.medical_certification_verified_by_id = actor.id if actor else None

    await _record_change(
        session,
        application,
        previous,
        actor=actor,
        action="medical_certification_status_changed",
        details={
            "reason": reason,
            "submission_method": ProofSubmissionMethod.normalize(submission_method).value,
        },
    )
    return application


async def update_certification(
    session: AsyncSession,
    application_id: int,
    status: MedicalCertificationStatus,
    *,
    actor: User,
    file: ProofFile | None = None,
    rejection_reason: str | None = None,
    submission_method=ProofSubmissionMethod.WEB,
    storage: StorageService | None = None,
) -> Application:
    """Apply a certification status change in one locked transaction.

    The branch depends on what is supplied: a rejection with a reason needs
    no file; a new file is attached before the status is set; a bare status
    change needs an existing attachment.
    """
    status = MedicalCertificationStatus(status)
    if status == MedicalCertificationStatus.NOT_REQUESTED:
        raise ValidationError("Certification status cannot be reset to not_requested")
    method = ProofSubmissionMethod.normalize(submission_method)
    try:
        application = await get_application(session, application_id, lock=True)
        if application is None:
            raise ValidationError(f"Application {application_id} not found")

        if status == MedicalCertificationStatus.REJECTED:
            await reject_certification(
                session, application, actor=actor, reason=rejection_reason, submission_method=method,
            )
            branch = "rejection"
        elif status == MedicalCertificationStatus.REQUESTED:
            await request_certification(session, application, actor=actor)
            branch = "request"
        else:
            if file is not None:
                blob = await resolve_blob(
                    session,
                    storage or get_storage_service(),
                    file,
                    application_id=application.id,
                    attachment_name=CERTIFICATION_ATTACHMENT,
                )
                application.medical_certification = blob
                branch = "upload"
            elif application.medical_certification is not None:
                branch = "status_only"
            else:
                raise ValidationError(
                    f"A certification document is required to mark it {status.value}"
                )

            previous = application.medical_certification_status
            application.medical_certification_status = status
            if status == MedicalCertificationStatus.APPROVED:
                application.medical_certification_verified_at = utcnow()
                application.medical_certification_verified_by_id = actor.id if actor else None
                application.medical_certification_rejection_reason = None
            validate_certification_state(application)

            await _record_change(
                session,
                application,
                previous,
                actor=actor,
                action="medical_certification_status_changed",
                details={
                    "submission_method": method.value,
                    "has_attachment": True,
                    "uploaded": branch == "upload",
                },
            )

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Certification for application %s set to %s (%s)", application_id, status.value, branch,
    )
    return application
