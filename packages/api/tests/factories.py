# This project was developed with assistance from AI tools.
"""Shared test factory functions.

``make_mock_*`` build MagicMock stand-ins for pure-function tests; the async
``create_*`` helpers write real rows into the per-test SQLite database.
"""

import itertools
from datetime import UTC, datetime
from unittest.mock import MagicMock

from db import Application, Blob, User
from db.enums import (
    ApplicationStatus,
    ApplicationSubmissionMethod,
    MedicalCertificationStatus,
    ProofStatus,
    UserRole,
)

from src.services.blobs import UploadedFile

_seq = itertools.count(1)

PDF_BYTES = b"%PDF-1.4\n" + b"0" * 2048


def make_upload(filename="proof.pdf", content_type="application/pdf", data=PDF_BYTES) -> UploadedFile:
    return UploadedFile(filename=filename, content_type=content_type, data=data)


# ---------------------------------------------------------------------------
# Mocks
# ---------------------------------------------------------------------------


def make_mock_blob(created_at=None, filename="proof.pdf"):
    """Create a mock Blob row.

    Args:
        created_at: Upload time; defaults to now.
        filename: Original filename.

    Returns:
        MagicMock configured as a Blob model instance.
    """
    blob = MagicMock(spec=Blob)
    blob.id = 7
    blob.filename = filename
    blob.content_type = "application/pdf"
    blob.byte_size = len(PDF_BYTES)
    blob.created_at = created_at or datetime.now(UTC)
    return blob


def make_mock_app(
    id=42,
    status=ApplicationStatus.IN_PROGRESS,
    income=ProofStatus.NOT_REVIEWED,
    residency=ProofStatus.NOT_REVIEWED,
    income_blob=None,
    residency_blob=None,
    certification=MedicalCertificationStatus.NOT_REQUESTED,
    certification_blob=None,
):
    """Create a mock Application with working ``proof_status``/``proof_blob`` helpers."""
    app = MagicMock()
    app.id = id
    app.status = status
    app.income_proof_status = income
    app.residency_proof_status = residency
    app.income_proof = income_blob
    app.residency_proof = residency_blob
    app.medical_certification_status = certification
    app.medical_certification = certification_blob
    app.proof_status.side_effect = lambda pt: getattr(app, f"{pt.value}_proof_status")
    app.proof_blob.side_effect = lambda pt: getattr(app, f"{pt.value}_proof")
    return app


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


async def create_user(session, role=UserRole.CONSTITUENT, first_name="Jordan", last_name="Rivera") -> User:
    n = next(_seq)
    user = User(
        email=f"{role.value}-{n}@example.org",
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    session.add(user)
    await session.flush()
    return user


async def create_application(
    session,
    user: User,
    *,
    status=ApplicationStatus.IN_PROGRESS,
    provider_email="dr.lee@clinic.example.org",
    **overrides,
) -> Application:
    """Insert an application directly, bypassing the waiting-period check."""
    values = {
        "submission_method": ApplicationSubmissionMethod.ONLINE,
        "income_proof_status": ProofStatus.NOT_REVIEWED,
        "residency_proof_status": ProofStatus.NOT_REVIEWED,
        "medical_certification_status": MedicalCertificationStatus.NOT_REQUESTED,
        "medical_provider_name": "Dr. Lee",
        "medical_provider_email": provider_email,
        "total_rejections": 0,
        "medical_certification_request_count": 0,
    }
    values.update(overrides)
    application = Application(user=user, status=status, **values)
    session.add(application)
    await session.flush()
    return application


async def create_blob(session, filename="proof.pdf") -> Blob:
    n = next(_seq)
    blob = Blob(
        key=f"test/{n}/{filename}",
        filename=filename,
        content_type="application/pdf",
        byte_size=len(PDF_BYTES),
        checksum="0" * 64,
    )
    session.add(blob)
    await session.flush()
    return blob
