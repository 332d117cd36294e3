# This project was developed with assistance from AI tools.
"""Proof attachment engine.

One pipeline for every way a proof lands on an application:
resolve the file to a Blob, set the proof status through a validated write,
record the submission, and schedule the admin review notification. A storage
failure rolls the whole unit back and leaves a best-effort failure event.
"""

import logging
import time
from dataclasses import dataclass

from db import Application, ProofReview, ProofSubmissionAudit, User
from db.enums import ProofStatus, ProofSubmissionMethod, ProofType
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import AuthorizationError, StorageError, ValidationError
from ..core.timeutil import utcnow
from .application import perform_auto_approval, should_auto_approve
from .audit import record_event, record_event_safely
from .blobs import ProofFile, purge_blob, resolve_blob
from .jobs import NOTIFY_ADMINS, enqueue_job
from .notification import create_and_deliver
from .notification_composer import NotificationAction
from .policy import load_policies
from .proof_validation import AttachmentContext, validate_proof_state
from .rate_limit import RateLimiter
from .storage import StorageService, get_storage_service

logger = logging.getLogger(__name__)

RATE_LIMITED_ACTION = "proof_submission"
PAPER_REJECTION_NOTES = "Rejected during paper application submission"


@dataclass
class AttachmentResult:
    success: bool
    error: Exception | None = None
    duration_ms: int = 0
    blob_size: int | None = None


# ---------------------------------------------------------------------------
# Status write paths
# ---------------------------------------------------------------------------


def set_proof_status(
    application: Application,
    proof_type: ProofType,
    status: ProofStatus,
    *,
    context: AttachmentContext = AttachmentContext.STANDARD,
) -> None:
    """Validated proof status write; the previous value is restored on failure."""
    column = f"{ProofType(proof_type).value}_proof_status"
    previous = getattr(application, column)
    setattr(application, column, ProofStatus(status))
    try:
        validate_proof_state(application, proof_type, context=context)
    except ValidationError:
        setattr(application, column, previous)
        raise


def force_set_proof_status(
    application: Application,
    proof_type: ProofType,
    status: ProofStatus,
) -> None:
    """Unvalidated write used when a proof is rejected without any attachment.

    Only ``rejected`` may be written this way; it is the one status that is
    consistent with a missing file.
    """
    if ProofStatus(status) != ProofStatus.REJECTED:
        raise ValidationError("Only a rejection may bypass proof validation")
    setattr(application, f"{ProofType(proof_type).value}_proof_status", ProofStatus.REJECTED)


def refresh_needs_review(application: Application) -> bool:
    """Keep ``needs_review_since`` in step with pending proofs.

    Returns True when the marker was newly set by this call.
    """
    pending = any(
        application.proof_status(pt) == ProofStatus.NOT_REVIEWED
        and application.proof_blob(pt) is not None
        for pt in ProofType
    )
    if pending and application.needs_review_since is None:
        application.needs_review_since = utcnow()
        return True
    if not pending:
        application.needs_review_since = None
    return False


# ---------------------------------------------------------------------------
# Attach
# ---------------------------------------------------------------------------


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def attach_proof(
    session: AsyncSession,
    application: Application,
    proof_type: ProofType,
    file: ProofFile,
    *,
    status: ProofStatus = ProofStatus.NOT_REVIEWED,
    admin: User | None = None,
    submission_method: ProofSubmissionMethod | str | None = None,
    metadata: dict | None = None,
    context: AttachmentContext = AttachmentContext.STANDARD,
    storage: StorageService | None = None,
    rate_limiter: RateLimiter | None = None,
) -> AttachmentResult:
    """Attach a proof and commit, or roll back and report why.

    Validation and rate-limit errors propagate after the rollback. Storage
    failures are returned in the result together with the elapsed time.
    A missing or unrecognised ``submission_method`` is recorded as ``unknown``.
    """
    started = time.monotonic()
    proof_type = ProofType(proof_type)
    method = ProofSubmissionMethod.normalize(submission_method)
    application_id = application.id
    acting_user_id = admin.id if admin else application.user_id

    if rate_limiter is not None and admin is None:
        policies = await load_policies(session)
        rate_limiter.check(RATE_LIMITED_ACTION, application.user_id, method.value, policies=policies)

    storage = storage or get_storage_service()
    try:
        blob = await resolve_blob(
            session,
            storage,
            file,
            application_id=application_id,
            attachment_name=f"{proof_type.value}_proof",
        )
        setattr(application, f"{proof_type.value}_proof", blob)
        set_proof_status(application, proof_type, status, context=context)
        newly_pending = refresh_needs_review(application)

        session.add(
            ProofSubmissionAudit(
                application_id=application_id,
                user_id=acting_user_id,
                proof_type=proof_type,
                submission_method=method,
                audit_data={
                    "blob_id": blob.id,
                    "blob_size": blob.byte_size,
                    "filename": blob.filename,
                    "status": ProofStatus(status).value,
                    **{str(k): v for k, v in (metadata or {}).items()},
                },
            )
        )
        await record_event(
            session,
            action=f"{proof_type.value}_proof_submitted",
            user_id=acting_user_id,
            application_id=application_id,
            event_data={
                "proof_type": proof_type.value,
                "submission_method": method.value,
                "status": ProofStatus(status).value,
                "blob_id": blob.id,
                "blob_size": blob.byte_size,
                "has_attachment": True,
            },
        )
        if newly_pending:
            enqueue_job(
                session,
                NOTIFY_ADMINS,
                {"application_id": application_id, "proof_types": [proof_type.value]},
            )
        if admin is not None:
            await create_and_deliver(
                session,
                action=f"{proof_type.value}_proof_attached",
                recipient=application.user,
                actor=admin,
                notifiable=application,
                metadata={"proof_type": proof_type.value, "submission_method": method.value},
            )
        if should_auto_approve(application, ProofStatus(status)):
            await session.flush()
            await perform_auto_approval(session, application_id, actor=admin)
        blob_size = blob.byte_size
        await session.commit()
    except StorageError as exc:
        await session.rollback()
        logger.error(
            "Storage failure attaching %s proof to application %s: %s",
            proof_type.value, application_id, exc,
        )
        await record_event_safely(
            session,
            action=f"{proof_type.value}_proof_attachment_failed",
            user_id=acting_user_id,
            application_id=application_id,
            event_data={
                "error_class": type(exc).__name__,
                "error_message": str(exc),
                "proof_type": proof_type.value,
                "status": "attachment_failed",
                "submission_method": method.value,
            },
        )
        await session.commit()
        return AttachmentResult(success=False, error=exc, duration_ms=_elapsed_ms(started))
    except Exception:
        await session.rollback()
        raise

    duration_ms = _elapsed_ms(started)
    logger.info(
        "Attached %s proof to application %s via %s in %dms",
        proof_type.value, application_id, method.value, duration_ms,
    )
    return AttachmentResult(success=True, duration_ms=duration_ms, blob_size=blob_size)


# ---------------------------------------------------------------------------
# Reject without attachment / purge
# ---------------------------------------------------------------------------


async def reject_proof_without_attachment(
    session: AsyncSession,
    application: Application,
    proof_type: ProofType,
    *,
    admin: User,
    reason: str = "other",
    notes: str = PAPER_REJECTION_NOTES,
) -> ProofReview:
    """Record a rejection for a proof that was never supplied (paper intake)."""
    proof_type = ProofType(proof_type)
    force_set_proof_status(application, proof_type, ProofStatus.REJECTED)

    review = ProofReview(
        application_id=application.id,
        admin_id=admin.id,
        proof_type=proof_type,
        status=ProofStatus.REJECTED,
        submission_method=ProofSubmissionMethod.PAPER,
        rejection_reason=reason,
        notes=notes,
        reviewed_at=utcnow(),
    )
    session.add(review)
    await session.flush()

    await record_event_safely(
        session,
        action=f"{proof_type.value}_proof_rejected",
        user_id=admin.id,
        application_id=application.id,
        auditable_type="ProofReview",
        auditable_id=review.id,
        event_data={
            "proof_type": proof_type.value,
            "has_attachment": False,
            "rejection_reason": reason,
            "submission_method": ProofSubmissionMethod.PAPER.value,
        },
    )
    await create_and_deliver(
        session,
        action=NotificationAction.PROOF_REJECTED,
        recipient=application.user,
        actor=admin,
        notifiable=application,
        metadata={"proof_type": proof_type.value, "rejection_reason": reason},
    )
    await session.commit()
    return review


async def purge_proofs(
    session: AsyncSession,
    application: Application,
    admin: User,
    *,
    storage: StorageService | None = None,
) -> None:
    """Destroy both proof files and reset the proofs to ``not_reviewed``."""
    if admin is None or not admin.is_admin:
        raise AuthorizationError("Only administrators can purge proofs")

    storage = storage or get_storage_service()
    for proof_type in ProofType:
        blob = application.proof_blob(proof_type)
        if blob is not None:
            setattr(application, f"{proof_type.value}_proof", None)
            await purge_blob(session, storage, blob)
        setattr(application, f"{proof_type.value}_proof_status", ProofStatus.NOT_REVIEWED)
        session.add(
            ProofReview(
                application_id=application.id,
                admin_id=admin.id,
                proof_type=proof_type,
                status=ProofStatus.NOT_REVIEWED,
                submission_method=ProofSubmissionMethod.SYSTEM,
                notes="Proofs purged by administrator",
                reviewed_at=utcnow(),
            )
        )
    application.needs_review_since = None
    await session.flush()

    await create_and_deliver(
        session,
        action=NotificationAction.PROOFS_PURGED,
        recipient=application.user,
        actor=admin,
        notifiable=application,
    )
    await session.commit()
    logger.info("Admin %s purged proofs for application %s", admin.id, application.id)
