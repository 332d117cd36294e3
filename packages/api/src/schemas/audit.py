# This project was developed with assistance from AI tools.
"""Pydantic schemas for the application audit log."""

import enum
from datetime import datetime

from pydantic import BaseModel, Field


class AuditLogKind(str, enum.Enum):
    """Which table an audit log entry was read from."""

    STATUS_CHANGE = "status_change"
    PROOF_REVIEW = "proof_review"
    NOTIFICATION = "notification"
    EVENT = "event"
    PROOF_SUBMISSION = "proof_submission"


class AuditLogEntry(BaseModel):
    """One fact in an application's merged history."""

    kind: AuditLogKind
    source_id: int
    action: str
    created_at: datetime
    actor_id: int | None = None
    actor_name: str | None = None
    from_status: str | None = None
    to_status: str | None = None
    proof_type: str | None = None
    status: str | None = None
    notes: str | None = None
    metadata: dict = Field(default_factory=dict)

    @property
    def is_certification_change(self) -> bool:
        return self.metadata.get("change_type") == "medical_certification"


class AuditLogResponse(BaseModel):
    """Response for the audit log of one application."""

    application_id: int
    count: int
    entries: list[AuditLogEntry]
    errors: list[str] = Field(default_factory=list)


class CertificationRequestEntry(BaseModel):
    """A medical certification request, reshaped for display."""

    timestamp: datetime
    actor_name: str
    submission_method: str | None = None


class CertificationHistoryResponse(BaseModel):
    application_id: int
    events: list[AuditLogEntry]
    requests: list[CertificationRequestEntry]


class AuditChainVerifyResponse(BaseModel):
    """Response for audit hash chain verification."""

    status: str
    events_checked: int
    first_break_id: int | None = None
