# This project was developed with assistance from AI tools.
"""Checks run before any proof or certification write is saved.

File checks (content type, size bounds, suspicious names, active PDF
content) guard the blob store. State checks guard the application row:
an approved proof must carry a file, and an attached proof may only sit
in ``not_reviewed`` for a short grace window unless it arrived through
paper intake, where staff attach first and review in bulk.
"""

import enum
import logging
import os
from datetime import datetime, timedelta

from db import Application
from db.enums import MedicalCertificationStatus, ProofStatus, ProofType

from ..core.config import settings
from ..core.errors import ValidationError
from ..core.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/png",
        "image/tiff",
        "image/bmp",
    }
)

_SUSPICIOUS_EXTENSIONS = (".exe", ".sh", ".bat", ".cmd", ".vbs", ".js")
_PDF_ACTIVE_MARKERS = (b"/JavaScript", b"/JS", b"/Launch", b"/SubmitForm", b"/RichMedia")


class AttachmentContext(str, enum.Enum):
    """Who is writing proofs: regular review flow or bulk paper intake."""

    STANDARD = "standard"
    PAPER = "paper"


# ---------------------------------------------------------------------------
# File checks
# ---------------------------------------------------------------------------


def validate_file_metadata(filename: str, content_type: str, byte_size: int) -> None:
    """Raise ValidationError for a disallowed type, size or filename."""
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            f"Unsupported content type: {content_type}. "
            f"Allowed: {', '.join(sorted(ALLOWED_CONTENT_TYPES))}"
        )

    if byte_size > settings.UPLOAD_MAX_SIZE_BYTES:
        raise ValidationError(
            f"File size {byte_size} exceeds maximum of {settings.UPLOAD_MAX_SIZE_BYTES} bytes"
        )
    if byte_size < settings.UPLOAD_MIN_SIZE_BYTES:
        raise ValidationError(
            f"File size {byte_size} is below minimum of {settings.UPLOAD_MIN_SIZE_BYTES} bytes"
        )

    name = filename or ""
    if ".." in name or "/" in name or "\\" in name:
        raise ValidationError(f"Suspicious filename: {name}")
    if os.path.splitext(name)[1].lower() in _SUSPICIOUS_EXTENSIONS:
        raise ValidationError(f"Executable attachments are not accepted: {name}")


def validate_file_content(data: bytes, content_type: str) -> None:
    """Reject PDFs that embed scripts, launch actions or form submission."""
    if content_type != "application/pdf":
        return
    for marker in _PDF_ACTIVE_MARKERS:
        if marker in data:
            logger.warning("Rejected PDF with active content marker %s", marker.decode())
            raise ValidationError("PDF contains active content and cannot be accepted")


# ---------------------------------------------------------------------------
# State checks
# ---------------------------------------------------------------------------


def validate_proof_state(
    application: Application,
    proof_type: ProofType,
    *,
    context: AttachmentContext = AttachmentContext.STANDARD,
    now: datetime | None = None,
) -> None:
    """Raise ValidationError if the proof's status and attachment disagree."""
    status = application.proof_status(proof_type)
    blob = application.proof_blob(proof_type)
    label = ProofType(proof_type).value.capitalize()

    if status == ProofStatus.APPROVED and blob is None:
        raise ValidationError(f"{label} proof must be attached before it can be approved")

    if status == ProofStatus.NOT_REVIEWED and blob is not None:
        if context == AttachmentContext.PAPER:
            return
        age = (now or utcnow()) - as_utc(blob.created_at)
        if age > timedelta(seconds=settings.PROOF_REVIEW_GRACE_SECONDS):
            raise ValidationError(
                f"{label} proof has been attached for {int(age.total_seconds())}s "
                "and must be reviewed before it is saved as not_reviewed"
            )


def validate_certification_state(application: Application) -> None:
    status = application.medical_certification_status
    if (
        status in (MedicalCertificationStatus.APPROVED, MedicalCertificationStatus.RECEIVED)
        and application.medical_certification is None
    ):
        raise ValidationError(
            f"Medical certification must be attached before it can be marked {status.value}"
        )
