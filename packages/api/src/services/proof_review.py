# This project was developed with assistance from AI tools.
"""Admin review of submitted proofs."""

import logging

from db import Application, ProofReview, User
from db.enums import (
    ApplicationStatus,
    MedicalCertificationStatus,
    ProofStatus,
    ProofSubmissionMethod,
    ProofType,
)
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import AuthorizationError, ValidationError
from ..core.timeutil import utcnow
from .application import all_proofs_approved, perform_auto_approval, should_auto_approve, update_status
from .audit import record_event_safely
from .certification import request_certification
from .notification import create_and_deliver, notify_admins
from .notification_composer import NotificationAction
from .proof_attachment import refresh_needs_review, set_proof_status

logger = logging.getLogger(__name__)


async def review_proof(
    session: AsyncSession,
    application: Application,
    admin: User,
    proof_type: ProofType,
    status: ProofStatus,
    *,
    rejection_reason: str | None = None,
    notes: str | None = None,
    submission_method=ProofSubmissionMethod.WEB,
) -> ProofReview:
    """Approve or reject one proof and apply the consequences.

    Rejections count toward the application's rejection limit: reaching it
    warns admins, exceeding it archives the application. An approval that
    completes both proofs triggers auto-approval and, if still outstanding,
    the medical certification request.

    Raises:
        AuthorizationError: ``admin`` is not an administrator.
        ValidationError: archived application, rejection without a reason,
            or approval of a proof with no attachment.
    """
    if admin is None or not admin.is_admin:
        raise AuthorizationError("Only administrators can review proofs")
    if application.status == ApplicationStatus.ARCHIVED:
        raise ValidationError("Cannot review proofs for an archived application")

    proof_type = ProofType(proof_type)
    status = ProofStatus(status)
    if status == ProofStatus.NOT_REVIEWED:
        raise ValidationError("A review must approve or reject the proof")
    if status == ProofStatus.REJECTED and not rejection_reason:
        raise ValidationError("Rejection reason is required when rejecting a proof")

    try:
        set_proof_status(application, proof_type, status)
        refresh_needs_review(application)

        review = ProofReview(
            application_id=application.id,
            admin_id=admin.id,
            proof_type=proof_type,
            status=status,
            submission_method=ProofSubmissionMethod.normalize(submission_method),
            rejection_reason=rejection_reason,
            notes=notes,
            reviewed_at=utcnow(),
        )
        session.add(review)
        await session.flush()

        await record_event_safely(
            session,
            action=f"{proof_type.value}_proof_{status.value}",
            user_id=admin.id,
            application_id=application.id,
            auditable_type="ProofReview",
            auditable_id=review.id,
            event_data={
                "proof_type": proof_type.value,
                "status": status.value,
                "rejection_reason": rejection_reason,
                "has_attachment": application.proof_blob(proof_type) is not None,
            },
        )
        await create_and_deliver(
            session,
            action=NotificationAction.PROOF_APPROVED
            if status == ProofStatus.APPROVED
            else NotificationAction.PROOF_REJECTED,
            recipient=application.user,
            actor=admin,
            notifiable=application,
            metadata={"proof_type": proof_type.value, "rejection_reason": rejection_reason},
        )

        if status == ProofStatus.REJECTED:
            await _apply_rejection_limit(session, application, admin)
        else:
            await _after_approval(session, application, admin)

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Admin %s %s %s proof for application %s",
        admin.id, status.value, proof_type.value, review.application_id,
    )
    return review


async def _apply_rejection_limit(session: AsyncSession, application: Application, admin: User) -> None:
    application.total_rejections = (application.total_rejections or 0) + 1
    limit = settings.MAX_PROOF_REJECTIONS
    if application.total_rejections < limit:
        return

    await notify_admins(
        session,
        action=NotificationAction.MAX_REJECTIONS_WARNING,
        actor=admin,
        notifiable=application,
        metadata={"total_rejections": application.total_rejections},
    )
    if application.total_rejections <= limit:
        return

    if ApplicationStatus.ARCHIVED in ApplicationStatus.valid_transitions()[application.status]:
        await update_status(
            session,
            application,
            ApplicationStatus.ARCHIVED,
            actor=admin,
            notes="Archived after exceeding the maximum number of proof rejections",
            metadata={"total_rejections": application.total_rejections},
        )
    await create_and_deliver(
        session,
        action=NotificationAction.MAX_REJECTIONS_REACHED,
        recipient=application.user,
        actor=admin,
        notifiable=application,
        metadata={"total_rejections": application.total_rejections},
    )


async def _after_approval(session: AsyncSession, application: Application, admin: User) -> None:
    if should_auto_approve(application, ProofStatus.APPROVED):
        await session.flush()
        await perform_auto_approval(session, application.id, actor=admin)

    if (
        all_proofs_approved(application)
        and application.medical_certification_status == MedicalCertificationStatus.NOT_REQUESTED
    ):
        try:
            await request_certification(session, application, actor=admin)
        except ValidationError as exc:
            logger.warning(
                "Certification not requested for application %s: %s", application.id, exc
            )
