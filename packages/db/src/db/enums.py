# This project was developed with assistance from AI tools.
"""
Domain enums for the benefits application lifecycle.

Shared domain types used by both SQLAlchemy models (db package)
and Pydantic schemas (api package).
"""

import enum


class ApplicationStatus(str, enum.Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_INFORMATION = "needs_information"
    REMINDER_SENT = "reminder_sent"
    AWAITING_DOCUMENTS = "awaiting_documents"
    ARCHIVED = "archived"

    @classmethod
    def terminal_statuses(cls) -> frozenset["ApplicationStatus"]:
        """Statuses that approve()/reject() may never leave."""
        return frozenset({cls.REJECTED, cls.ARCHIVED})

    @classmethod
    def active_statuses(cls) -> frozenset["ApplicationStatus"]:
        """Submitted applications still being worked by staff."""
        return frozenset(
            {cls.IN_PROGRESS, cls.NEEDS_INFORMATION, cls.REMINDER_SENT, cls.AWAITING_DOCUMENTS}
        )

    @classmethod
    def valid_transitions(cls) -> dict["ApplicationStatus", frozenset["ApplicationStatus"]]:
        """Allowed status transitions in the application lifecycle."""
        active = cls.active_statuses()
        outcomes = frozenset({cls.APPROVED, cls.REJECTED, cls.ARCHIVED})
        return {
            cls.DRAFT: frozenset({cls.IN_PROGRESS}),
            **{status: (active | outcomes) - {status} for status in active},
            cls.APPROVED: frozenset({cls.ARCHIVED}),
            cls.REJECTED: frozenset({cls.ARCHIVED}),
            cls.ARCHIVED: frozenset(),
        }

    @property
    def is_submitted(self) -> bool:
        return self is not ApplicationStatus.DRAFT


class ApplicationSubmissionMethod(str, enum.Enum):
    ONLINE = "online"
    PAPER = "paper"
    PHONE = "phone"
    EMAIL = "email"


class ProofType(str, enum.Enum):
    INCOME = "income"
    RESIDENCY = "residency"


class ProofStatus(str, enum.Enum):
    NOT_REVIEWED = "not_reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProofSubmissionMethod(str, enum.Enum):
    """Channel a proof arrived through (or ``system`` for automated actions)."""

    WEB = "web"
    EMAIL = "email"
    SCANNED = "scanned"
    PAPER = "paper"
    SYSTEM = "system"
    UNKNOWN = "unknown"

    @classmethod
    def normalize(cls, value) -> "ProofSubmissionMethod":
        """Coerce arbitrary input to a member, defaulting to UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class MedicalCertificationStatus(str, enum.Enum):
    NOT_REQUESTED = "not_requested"
    REQUESTED = "requested"
    RECEIVED = "received"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CONSTITUENT = "constituent"
    EVALUATOR = "evaluator"
    TRAINER = "trainer"
    MEDICAL_PROVIDER = "medical_provider"
    VENDOR = "vendor"


class VoucherStatus(str, enum.Enum):
    ACTIVE = "active"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SessionStatus(str, enum.Enum):
    """Shared lifecycle of evaluations and training sessions."""

    REQUESTED = "requested"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    NO_SHOW = "no_show"


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    ERROR = "error"


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
