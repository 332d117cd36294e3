# This project was developed with assistance from AI tools.
"""
Benefits casework -- domain models

Application lifecycle models covering constituents, proofs and their
reviews, medical certification, vouchers, evaluations, training sessions,
notifications, the append-only event trail and the job outbox.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base
from .enums import (
    ApplicationStatus,
    ApplicationSubmissionMethod,
    DeliveryStatus,
    JobStatus,
    MedicalCertificationStatus,
    ProofStatus,
    ProofSubmissionMethod,
    ProofType,
    SessionStatus,
    UserRole,
    VoucherStatus,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """Constituent, staff member or external party (provider, vendor)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(255), unique=True, nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(
        Enum(UserRole, name="user_role", native_enum=False),
        nullable=False,
        default=UserRole.CONSTITUENT,
    )
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f"<User(id={self.id}, role='{self.role}')>"


class Blob(Base):
    """Metadata for an object held in the blob store."""

    __tablename__ = "blobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(500), unique=True, nullable=False)
    filename = Column(String(255), nullable=False)
    content_type = Column(String(100), nullable=False)
    byte_size = Column(Integer, nullable=False)
    checksum = Column(String(64), nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    def __repr__(self):
        return f"<Blob(id={self.id}, key='{self.key}')>"


class Application(Base):
    """Benefits application (the case record)."""

    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    managing_guardian_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(
        Enum(ApplicationStatus, name="application_status", native_enum=False),
        nullable=False,
        default=ApplicationStatus.DRAFT,
    )
    submission_method = Column(
        Enum(ApplicationSubmissionMethod, name="application_submission_method", native_enum=False),
        nullable=False,
        default=ApplicationSubmissionMethod.ONLINE,
    )
    application_date = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    last_visited_step = Column(String(100), nullable=True)

    income_proof_status = Column(
        Enum(ProofStatus, name="income_proof_status", native_enum=False),
        nullable=False,
        default=ProofStatus.NOT_REVIEWED,
    )
    residency_proof_status = Column(
        Enum(ProofStatus, name="residency_proof_status", native_enum=False),
        nullable=False,
        default=ProofStatus.NOT_REVIEWED,
    )
    income_proof_blob_id = Column(Integer, ForeignKey("blobs.id", ondelete="SET NULL"), nullable=True)
    residency_proof_blob_id = Column(Integer, ForeignKey("blobs.id", ondelete="SET NULL"), nullable=True)
    total_rejections = Column(Integer, nullable=False, default=0)
    needs_review_since = Column(DateTime(timezone=True), nullable=True)

    medical_provider_name = Column(String(255), nullable=True)
    medical_provider_email = Column(String(255), nullable=True)
    medical_certification_status = Column(
        Enum(MedicalCertificationStatus, name="medical_certification_status", native_enum=False),
        nullable=False,
        default=MedicalCertificationStatus.NOT_REQUESTED,
    )
    medical_certification_blob_id = Column(
        Integer, ForeignKey("blobs.id", ondelete="SET NULL"), nullable=True,
    )
    medical_certification_requested_at = Column(DateTime(timezone=True), nullable=True)
    medical_certification_request_count = Column(Integer, nullable=False, default=0)
    medical_certification_verified_at = Column(DateTime(timezone=True), nullable=True)
    medical_certification_verified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    medical_certification_rejection_reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    user = relationship("User", foreign_keys=[user_id], lazy="joined")
    managing_guardian = relationship("User", foreign_keys=[managing_guardian_id])
    income_proof = relationship("Blob", foreign_keys=[income_proof_blob_id], lazy="joined")
    residency_proof = relationship("Blob", foreign_keys=[residency_proof_blob_id], lazy="joined")
    medical_certification = relationship(
        "Blob", foreign_keys=[medical_certification_blob_id], lazy="joined",
    )
    vouchers = relationship("Voucher", back_populates="application", cascade="all, delete-orphan")
    evaluations = relationship(
        "Evaluation", back_populates="application", cascade="all, delete-orphan",
    )
    training_sessions = relationship(
        "TrainingSession", back_populates="application", cascade="all, delete-orphan",
    )
    proof_reviews = relationship(
        "ProofReview", back_populates="application", cascade="all, delete-orphan",
    )
    status_changes = relationship(
        "ApplicationStatusChange", back_populates="application", cascade="all, delete-orphan",
    )
    proof_submission_audits = relationship(
        "ProofSubmissionAudit", back_populates="application", cascade="all, delete-orphan",
    )

    def proof_status(self, proof_type: ProofType) -> ProofStatus:
        return getattr(self, f"{ProofType(proof_type).value}_proof_status")

    def proof_blob(self, proof_type: ProofType) -> "Blob | None":
        return getattr(self, f"{ProofType(proof_type).value}_proof")

    def __repr__(self):
        return f"<Application(id={self.id}, status='{self.status}')>"


class ProofSubmissionAudit(Base):
    """Immutable record of one proof attachment or rejection attempt."""

    __tablename__ = "proof_submission_audits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    proof_type = Column(Enum(ProofType, name="proof_type", native_enum=False), nullable=False)
    submission_method = Column(
        Enum(ProofSubmissionMethod, name="proof_submission_method", native_enum=False),
        nullable=False,
    )
    audit_data = Column(JSON, nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    application = relationship("Application", back_populates="proof_submission_audits")
    user = relationship("User", lazy="joined")


class ProofReview(Base):
    """Admin (or system) decision on a single proof."""

    __tablename__ = "proof_reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    proof_type = Column(Enum(ProofType, name="proof_type", native_enum=False), nullable=False)
    status = Column(
        Enum(ProofStatus, name="proof_review_status", native_enum=False), nullable=False,
    )
    submission_method = Column(
        Enum(ProofSubmissionMethod, name="proof_submission_method", native_enum=False),
        nullable=False,
        default=ProofSubmissionMethod.WEB,
    )
    rejection_reason = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    application = relationship("Application", back_populates="proof_reviews")
    admin = relationship("User", lazy="joined")

    def __repr__(self):
        return f"<ProofReview(id={self.id}, {self.proof_type}={self.status})>"


class ApplicationStatusChange(Base):
    """from/to record for every status write (application or certification)."""

    __tablename__ = "application_status_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    from_status = Column(String(50), nullable=True)
    to_status = Column(String(50), nullable=False)
    notes = Column(Text, nullable=True)
    change_data = Column(JSON, nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    application = relationship("Application", back_populates="status_changes")
    user = relationship("User", lazy="joined")

    @property
    def is_certification_change(self) -> bool:
        return (self.change_data or {}).get("change_type") == "medical_certification"


class Event(Base):
    """Append-only audit trail. INSERT + SELECT only -- no UPDATE or DELETE."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )
    prev_hash = Column(String(64), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(100), nullable=False, index=True)
    application_id = Column(Integer, nullable=True, index=True)
    auditable_type = Column(String(50), nullable=True)
    auditable_id = Column(Integer, nullable=True)
    event_data = Column(JSON, nullable=True)

    user = relationship("User", lazy="joined")

    def __repr__(self):
        return f"<Event(id={self.id}, action='{self.action}')>"


class Notification(Base):
    """Recipient-facing fact; delivery status is updated in place."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(100), nullable=False, index=True)
    notifiable_type = Column(String(50), nullable=True)
    notifiable_id = Column(Integer, nullable=True, index=True)
    message = Column(Text, nullable=True)
    delivery_status = Column(
        Enum(DeliveryStatus, name="delivery_status", native_enum=False),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )
    message_id = Column(String(255), nullable=True)
    notification_data = Column(JSON, nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    recipient = relationship("User", foreign_keys=[recipient_id], lazy="joined")
    actor = relationship("User", foreign_keys=[actor_id], lazy="joined")

    def __repr__(self):
        return f"<Notification(id={self.id}, action='{self.action}', status='{self.delivery_status}')>"


class Voucher(Base):
    """Spendable voucher; at most one per application."""

    __tablename__ = "vouchers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="RESTRICT"), nullable=False, unique=True,
    )
    code = Column(String(12), unique=True, nullable=False)
    status = Column(
        Enum(VoucherStatus, name="voucher_status", native_enum=False),
        nullable=False,
        default=VoucherStatus.ACTIVE,
    )
    initial_value = Column(Numeric(10, 2), nullable=False)
    remaining_value = Column(Numeric(10, 2), nullable=False)
    issued_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    application = relationship("Application", back_populates="vouchers")

    def __repr__(self):
        return f"<Voucher(id={self.id}, code='{self.code}', status='{self.status}')>"


class Evaluation(Base):
    """Needs evaluation performed by an evaluator."""

    __tablename__ = "evaluations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    evaluator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    constituent_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        Enum(SessionStatus, name="evaluation_status", native_enum=False),
        nullable=False,
        default=SessionStatus.REQUESTED,
    )
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    application = relationship("Application", back_populates="evaluations")
    evaluator = relationship("User", foreign_keys=[evaluator_id], lazy="joined")


class TrainingSession(Base):
    """Product training delivered by a trainer."""

    __tablename__ = "training_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    trainer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(
        Enum(SessionStatus, name="training_session_status", native_enum=False),
        nullable=False,
        default=SessionStatus.REQUESTED,
    )
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    application = relationship("Application", back_populates="training_sessions")
    trainer = relationship("User", lazy="joined")


class Policy(Base):
    """Administrator-maintained numeric settings (limits, periods, thresholds)."""

    __tablename__ = "policies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(Integer, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )

    def __repr__(self):
        return f"<Policy(key='{self.key}', value={self.value})>"


class EmailTemplate(Base):
    """Outbound email text keyed by name, with %<variable>s placeholders."""

    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )


class Job(Base):
    """Deferred work written inside a business transaction, run after commit."""

    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(String(100), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    status = Column(
        Enum(JobStatus, name="job_status", native_enum=False),
        nullable=False,
        default=JobStatus.PENDING,
    )
    run_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    last_error = Column(Text, nullable=True)
    idempotency_key = Column(String(255), unique=True, nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False,
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Job(id={self.id}, type='{self.job_type}', status='{self.status}')>"
