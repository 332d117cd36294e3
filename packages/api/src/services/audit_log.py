# This project was developed with assistance from AI tools.
"""Merged audit log for one application.

Reads status changes, proof reviews, notifications, generic events and
proof submissions, maps them onto ``AuditLogEntry`` and sorts newest first.
A failing source turns the whole build into an empty list plus a recorded
error; a partial history would read as a complete one.
"""

import logging

from db import (
    Application,
    ApplicationStatusChange,
    Event,
    Notification,
    ProofReview,
    ProofSubmissionAudit,
)
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.timeutil import as_utc
from ..schemas.audit import AuditLogEntry, AuditLogKind
from .deduplication import deduplicate

logger = logging.getLogger(__name__)

NOTIFICATION_ACTIONS = (
    "medical_certification_requested",
    "medical_certification_received",
    "medical_certification_approved",
    "medical_certification_rejected",
    "review_requested",
    "documents_requested",
    "proof_approved",
    "proof_rejected",
)

EVENT_ACTIONS = (
    "voucher_assigned",
    "voucher_redeemed",
    "voucher_expired",
    "voucher_cancelled",
    "application_created",
    "evaluator_assigned",
    "trainer_assigned",
    "application_auto_approved",
    "medical_certification_requested",
    "medical_certification_status_changed",
    "alternate_contact_updated",
)

PROFILE_ACTIONS = ("profile_updated", "profile_updated_by_guardian")


def _name(user) -> str | None:
    return user.full_name if user is not None else None


def _from_status_change(change: ApplicationStatusChange) -> AuditLogEntry:
    metadata = dict(change.change_data or {})
    certification = metadata.get("change_type") == "medical_certification"
    return AuditLogEntry(
        kind=AuditLogKind.STATUS_CHANGE,
        source_id=change.id,
        action="medical_certification_status_changed" if certification else "status_changed",
        created_at=as_utc(change.created_at),
        actor_id=change.user_id,
        actor_name=_name(change.user),
        from_status=change.from_status,
        to_status=change.to_status,
        notes=change.notes,
        metadata=metadata,
    )


def _from_proof_review(review: ProofReview) -> AuditLogEntry:
    return AuditLogEntry(
        kind=AuditLogKind.PROOF_REVIEW,
        source_id=review.id,
        action=f"{review.proof_type.value}_proof_{review.status.value}",
        created_at=as_utc(review.created_at),
        actor_id=review.admin_id,
        actor_name=_name(review.admin),
        proof_type=review.proof_type.value,
        status=review.status.value,
        notes=review.notes,
        metadata={
            "rejection_reason": review.rejection_reason,
            "submission_method": review.submission_method.value if review.submission_method else None,
        },
    )


def _from_notification(notification: Notification) -> AuditLogEntry:
    return AuditLogEntry(
        kind=AuditLogKind.NOTIFICATION,
        source_id=notification.id,
        action=notification.action,
        created_at=as_utc(notification.created_at),
        actor_id=notification.actor_id,
        actor_name=_name(notification.actor),
        status=notification.delivery_status.value if notification.delivery_status else None,
        notes=notification.message,
        metadata=dict(notification.notification_data or {}),
    )


def _from_event(event: Event) -> AuditLogEntry:
    return AuditLogEntry(
        kind=AuditLogKind.EVENT,
        source_id=event.id,
        action=event.action,
        created_at=as_utc(event.created_at),
        actor_id=event.user_id,
        actor_name=_name(event.user),
        metadata=dict(event.event_data or {}),
    )


def _from_submission(audit: ProofSubmissionAudit) -> AuditLogEntry:
    metadata = dict(audit.audit_data or {})
    metadata.setdefault("proof_type", audit.proof_type.value)
    metadata["submission_method"] = audit.submission_method.value
    return AuditLogEntry(
        kind=AuditLogKind.PROOF_SUBMISSION,
        source_id=audit.id,
        action=f"{audit.proof_type.value}_proof_submitted",
        created_at=as_utc(audit.created_at),
        actor_id=audit.user_id,
        actor_name=_name(audit.user),
        proof_type=audit.proof_type.value,
        metadata=metadata,
    )


class AuditLogBuilder:
    """Builds the merged history of an application; failures land in ``errors``."""

    def __init__(self, session: AsyncSession, application: Application | None):
        self.session = session
        self.application = application
        self.errors: list[str] = []

    async def _scalars(self, stmt) -> list:
        result = await self.session.execute(stmt)
        return list(result.unique().scalars().all())

    async def _status_changes(self) -> list[AuditLogEntry]:
        rows = await self._scalars(
            select(ApplicationStatusChange).where(
                ApplicationStatusChange.application_id == self.application.id
            )
        )
        return [_from_status_change(row) for row in rows]

    async def _proof_reviews(self) -> list[AuditLogEntry]:
        rows = await self._scalars(
            select(ProofReview).where(ProofReview.application_id == self.application.id)
        )
        return [_from_proof_review(row) for row in rows]

    async def _notifications(self) -> list[AuditLogEntry]:
        rows = await self._scalars(
            select(Notification).where(
                Notification.notifiable_type == "Application",
                Notification.notifiable_id == self.application.id,
                Notification.action.in_(NOTIFICATION_ACTIONS),
            )
        )
        return [_from_notification(row) for row in rows]

    async def _events(self) -> list[AuditLogEntry]:
        rows = await self._scalars(
            select(Event).where(
                Event.application_id == self.application.id,
                Event.action.in_(EVENT_ACTIONS),
            )
        )
        return [_from_event(row) for row in rows]

    async def _profile_changes(self) -> list[AuditLogEntry]:
        user_ids = {self.application.user_id}
        if self.application.managing_guardian_id is not None:
            user_ids.add(self.application.managing_guardian_id)

        rows = await self._scalars(
            select(Event).where(
                or_(
                    (Event.action == "profile_updated") & Event.user_id.in_(user_ids),
                    Event.action == "profile_updated_by_guardian",
                )
            )
        )
        wanted = {str(uid) for uid in user_ids}
        return [
            _from_event(row)
            for row in rows
            if row.action == "profile_updated"
            or str((row.event_data or {}).get("user_id")) in wanted
        ]

    async def _submissions(self) -> list[AuditLogEntry]:
        rows = await self._scalars(
            select(ProofSubmissionAudit).where(
                ProofSubmissionAudit.application_id == self.application.id
            )
        )
        return [_from_submission(row) for row in rows]

    async def build_audit_logs(self) -> list[AuditLogEntry]:
        """Every source merged, newest first; ``[]`` on any source failure."""
        if self.application is None:
            return []
        try:
            entries = []
            for load in (
                self._proof_reviews,
                self._status_changes,
                self._notifications,
                self._events,
                self._profile_changes,
                self._submissions,
            ):
                entries.extend(await load())
        except Exception as exc:
            logger.exception("Failed to build audit logs for application %s", self.application.id)
            self.errors.append(f"Failed to build audit logs: {exc}")
            return []
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    async def build_deduplicated_audit_logs(self) -> list[AuditLogEntry]:
        entries = await self.build_audit_logs()
        try:
            return deduplicate(entries)
        except Exception as exc:
            logger.exception(
                "Failed to deduplicate audit logs for application %s", self.application.id
            )
            self.errors.append(f"Failed to build deduplicated audit logs: {exc}")
            return []
