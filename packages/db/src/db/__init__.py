# This project was developed with assistance from AI tools.
__version__ = "0.1.0"

from .database import Base, DatabaseService, get_db, get_db_service
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
from .models import (
    Application,
    ApplicationStatusChange,
    Blob,
    EmailTemplate,
    Evaluation,
    Event,
    Job,
    Notification,
    Policy,
    ProofReview,
    ProofSubmissionAudit,
    TrainingSession,
    User,
    Voucher,
)

__all__ = [
    "Base",
    "DatabaseService",
    "get_db",
    "get_db_service",
    "__version__",
    # Enums
    "ApplicationStatus",
    "ApplicationSubmissionMethod",
    "DeliveryStatus",
    "JobStatus",
    "MedicalCertificationStatus",
    "ProofStatus",
    "ProofSubmissionMethod",
    "ProofType",
    "SessionStatus",
    "UserRole",
    "VoucherStatus",
    # Models
    "Application",
    "ApplicationStatusChange",
    "Blob",
    "EmailTemplate",
    "Evaluation",
    "Event",
    "Job",
    "Notification",
    "Policy",
    "ProofReview",
    "ProofSubmissionAudit",
    "TrainingSession",
    "User",
    "Voucher",
]
