# This project was developed with assistance from AI tools.
"""Application state machine.

Every status write goes through ``update_status``: validate the transition,
set the column, write an ``ApplicationStatusChange`` and an
``application_status_changed`` event, then run the side effects tied to the
target status. The pipeline runs once per logical operation, so no
re-entrancy guard is needed.

Functions here flush but never commit; the caller owns the transaction.
"""

import logging
from datetime import timedelta

from db import Application, ApplicationStatusChange, User
from db.enums import (
    ApplicationStatus,
    ApplicationSubmissionMethod,
    MedicalCertificationStatus,
    ProofStatus,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import InvalidTransitionError, ValidationError
from ..core.timeutil import as_utc, utcnow
from .audit import record_event, record_event_safely
from .notification import create_and_deliver
from .notification_composer import NotificationAction
from .policy import get_policy

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = ApplicationStatus.terminal_statuses()

AUTO_APPROVAL_NOTE = "Auto-approved based on all requirements being met"


async def get_application(
    session: AsyncSession,
    application_id: int,
    *,
    lock: bool = False,
) -> Application | None:
    """Load an application with fresh column values.

    With ``lock=True`` the row is held ``FOR UPDATE`` until the transaction
    ends; assignment services use this for their read-check-write sequence.
    """
    stmt = (
        select(Application)
        .where(Application.id == application_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update(of=Application)
    result = await session.execute(stmt)
    return result.unique().scalar_one_or_none()


async def create_application(
    session: AsyncSession,
    *,
    user: User,
    actor: User | None = None,
    submission_method: ApplicationSubmissionMethod = ApplicationSubmissionMethod.ONLINE,
    status: ApplicationStatus = ApplicationStatus.DRAFT,
    medical_provider_name: str | None = None,
    medical_provider_email: str | None = None,
    managing_guardian: User | None = None,
) -> Application:
    """Create an application after enforcing the re-application waiting period."""
    waiting_years = await get_policy(session, "waiting_period_years") or 0
    if waiting_years:
        latest_stmt = (
            select(Application.application_date)
            .where(Application.user_id == user.id)
            .order_by(Application.application_date.desc())
            .limit(1)
        )
        latest = (await session.execute(latest_stmt)).scalar_one_or_none()
        if latest is not None and as_utc(latest) > utcnow() - timedelta(days=365 * waiting_years):
            raise ValidationError(
                f"You must wait {waiting_years} years before submitting a new application."
            )

    application = Application(
        user=user,
        managing_guardian=managing_guardian,
        status=status,
        submission_method=submission_method,
        medical_provider_name=medical_provider_name,
        medical_provider_email=medical_provider_email,
        income_proof_status=ProofStatus.NOT_REVIEWED,
        residency_proof_status=ProofStatus.NOT_REVIEWED,
        medical_certification_status=MedicalCertificationStatus.NOT_REQUESTED,
        total_rejections=0,
        medical_certification_request_count=0,
    )
    session.add(application)
    await session.flush()

    await record_event(
        session,
        action="application_created",
        user_id=(actor or user).id,
        application_id=application.id,
        event_data={
            "application_id": application.id,
            "submission_method": submission_method.value,
            "initial_status": status.value,
        },
    )
    return application


def can_edit(application: Application) -> bool:
    """Constituents may only edit drafts."""
    return application.status == ApplicationStatus.DRAFT


def _check_transition(current: ApplicationStatus, new_status: ApplicationStatus) -> None:
    allowed = ApplicationStatus.valid_transitions().get(current, frozenset())
    if new_status not in allowed:
        raise InvalidTransitionError(
            f"Cannot transition from '{current.value}' to '{new_status.value}'. "
            f"Allowed: {sorted(s.value for s in allowed) if allowed else 'none (terminal status)'}."
        )


async def update_status(
    session: AsyncSession,
    application: Application,
    new_status: ApplicationStatus,
    *,
    actor: User | None = None,
    notes: str | None = None,
    metadata: dict | None = None,
) -> ApplicationStatusChange:
    """Validated status write with its status-change record and audit event."""
    current = application.status or ApplicationStatus.DRAFT
    _check_transition(current, new_status)

    application.status = new_status
    change = ApplicationStatusChange(
        application_id=application.id,
        user_id=actor.id if actor else None,
        from_status=current.value,
        to_status=new_status.value,
        notes=notes,
        change_data=metadata or {},
    )
    session.add(change)
    await session.flush()

    await record_event_safely(
        session,
        action="application_status_changed",
        user_id=actor.id if actor else application.user_id,
        application_id=application.id,
        event_data={
            "application_id": application.id,
            "old_status": current.value,
            "new_status": new_status.value,
            "submission_method": application.submission_method.value
            if application.submission_method
            else None,
        },
    )

    if new_status == ApplicationStatus.AWAITING_DOCUMENTS:
        await _on_awaiting_documents(session, application, actor)
    return change


async def _on_awaiting_documents(
    session: AsyncSession,
    application: Application,
    actor: User | None,
) -> None:
    """Ask the medical provider for certification once both proofs are approved."""
    if not all_proofs_approved(application):
        return
    if application.medical_certification_status != MedicalCertificationStatus.NOT_REQUESTED:
        return

    from .certification import request_certification

    try:
        await request_certification(session, application, actor=actor)
    except ValidationError as exc:
        logger.warning(
            "Could not auto-request certification for application %s: %s", application.id, exc
        )


def all_proofs_approved(application: Application) -> bool:
    return (
        application.income_proof_status == ProofStatus.APPROVED
        and application.residency_proof_status == ProofStatus.APPROVED
    )


async def approve(
    session: AsyncSession,
    application: Application,
    *,
    actor: User | None = None,
    notes: str | None = None,
    metadata: dict | None = None,
) -> Application:
    """Move to ``approved``; raises InvalidTransitionError from a terminal status."""
    if application.status in _TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f"Cannot approve application {application.id}: status '{application.status.value}' is terminal."
        )
    await update_status(
        session, application, ApplicationStatus.APPROVED, actor=actor, notes=notes, metadata=metadata,
    )
    return application


async def reject(
    session: AsyncSession,
    application: Application,
    *,
    actor: User | None = None,
    notes: str | None = None,
) -> Application:
    """Move to ``rejected``; raises InvalidTransitionError from a terminal status."""
    if application.status in _TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f"Cannot reject application {application.id}: status '{application.status.value}' is terminal."
        )
    await update_status(session, application, ApplicationStatus.REJECTED, actor=actor, notes=notes)
    return application


async def request_documents(
    session: AsyncSession,
    application: Application,
    *,
    actor: User | None = None,
    notes: str | None = None,
) -> Application:
    """Move to ``awaiting_documents`` and tell the constituent."""
    await update_status(
        session, application, ApplicationStatus.AWAITING_DOCUMENTS, actor=actor, notes=notes,
    )
    await create_and_deliver(
        session,
        action=NotificationAction.DOCUMENTS_REQUESTED,
        recipient=application.user,
        actor=actor,
        notifiable=application,
        metadata={"notes": notes} if notes else None,
    )
    return application


# ---------------------------------------------------------------------------
# Auto-approval
# ---------------------------------------------------------------------------


def should_auto_approve(application: Application, new_proof_status: ProofStatus) -> bool:
    """True iff this proof approval completes the set and the application isn't approved yet."""
    return (
        new_proof_status == ProofStatus.APPROVED
        and all_proofs_approved(application)
        and application.status != ApplicationStatus.APPROVED
    )


async def perform_auto_approval(
    session: AsyncSession,
    application_id: int,
    *,
    actor: User | None = None,
) -> bool:
    """Re-read the application and approve it if it now qualifies.

    Returns True when an approval was written. Calling it again on an
    approved application is a no-op because the predicate no longer holds.
    """
    application = await get_application(session, application_id)
    if application is None or not should_auto_approve(application, ProofStatus.APPROVED):
        return False

    if ApplicationStatus.APPROVED not in ApplicationStatus.valid_transitions()[application.status]:
        logger.info(
            "Application %s qualifies for auto-approval but is in '%s'; skipping",
            application.id, application.status.value,
        )
        return False

    previous = application.status
    await approve(
        session,
        application,
        actor=actor,
        notes=AUTO_APPROVAL_NOTE,
        metadata={"auto_approval": True},
    )
    await record_event_safely(
        session,
        action="application_auto_approved",
        user_id=actor.id if actor else None,
        application_id=application.id,
        event_data={
            "application_id": application.id,
            "old_status": previous.value,
            "new_status": application.status.value,
            "timestamp": utcnow().isoformat(),
            "auto_approval": True,
            "triggered_by_user_id": actor.id if actor else None,
        },
    )
    logger.info("Application %s auto-approved", application.id)
    return True


# ---------------------------------------------------------------------------
# Bulk
# ---------------------------------------------------------------------------


async def batch_update_status(
    session: AsyncSession,
    application_ids: list[int],
    status: ApplicationStatus,
    *,
    actor: User | None = None,
) -> int:
    """Bulk status write for admin actions.

    Skips the per-record pipeline (no transition check, no status-change rows,
    no side effects). One batch-level event records which rows were touched.
    """
    if not application_ids:
        return 0

    stmt = (
        update(Application)
        .where(Application.id.in_(application_ids))
        .values(status=status, updated_at=utcnow())
        .execution_options(synchronize_session="evaluate")
    )
    result = await session.execute(stmt)
    count = result.rowcount or 0

    await record_event_safely(
        session,
        action="applications_batch_status_updated",
        user_id=actor.id if actor else None,
        event_data={
            "application_ids": sorted(application_ids),
            "status": status.value,
            "updated_count": count,
        },
    )
    logger.info("Batch status update to %s touched %d applications", status.value, count)
    return count
