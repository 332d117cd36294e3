# This project was developed with assistance from AI tools.
"""Tests for proof file and state validation."""

from datetime import UTC, datetime, timedelta

import pytest
from db.enums import MedicalCertificationStatus, ProofStatus, ProofType

from src.core.errors import ValidationError
from src.services.proof_attachment import force_set_proof_status, refresh_needs_review, set_proof_status
from src.services.proof_validation import (
    AttachmentContext,
    validate_certification_state,
    validate_file_content,
    validate_file_metadata,
    validate_proof_state,
)
from tests.factories import PDF_BYTES, make_mock_app, make_mock_blob

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# File checks
# ---------------------------------------------------------------------------


def test_accepts_pdf():
    validate_file_metadata("income.pdf", "application/pdf", len(PDF_BYTES))


@pytest.mark.parametrize(
    "filename,content_type,size,match",
    [
        ("income.docx", "application/msword", 4096, "Unsupported content type"),
        ("income.pdf", "application/pdf", 10 * 1024 * 1024, "exceeds maximum"),
        ("income.pdf", "application/pdf", 12, "below minimum"),
        ("../../etc/passwd.pdf", "application/pdf", 4096, "Suspicious filename"),
        ("scan.exe", "image/png", 4096, "Executable"),
    ],
)
def test_rejects_bad_metadata(filename, content_type, size, match):
    with pytest.raises(ValidationError, match=match):
        validate_file_metadata(filename, content_type, size)


def test_rejects_pdf_with_javascript():
    with pytest.raises(ValidationError, match="active content"):
        validate_file_content(b"%PDF-1.4 /JavaScript (app.alert(1))", "application/pdf")


def test_images_skip_content_scan():
    validate_file_content(b"/JavaScript", "image/png")


# ---------------------------------------------------------------------------
# State checks
# ---------------------------------------------------------------------------


def test_approved_requires_attachment():
    app = make_mock_app(income=ProofStatus.APPROVED)
    with pytest.raises(ValidationError, match="must be attached before it can be approved"):
        validate_proof_state(app, ProofType.INCOME, now=NOW)


def test_approved_with_attachment_is_valid():
    app = make_mock_app(income=ProofStatus.APPROVED, income_blob=make_mock_blob(NOW))
    validate_proof_state(app, ProofType.INCOME, now=NOW)


def test_fresh_not_reviewed_attachment_is_valid():
    app = make_mock_app(income_blob=make_mock_blob(NOW - timedelta(seconds=5)))
    validate_proof_state(app, ProofType.INCOME, now=NOW)


def test_stale_not_reviewed_attachment_is_invalid():
    app = make_mock_app(residency_blob=make_mock_blob(NOW - timedelta(minutes=10)))
    with pytest.raises(ValidationError, match="must be reviewed"):
        validate_proof_state(app, ProofType.RESIDENCY, now=NOW)


def test_paper_context_skips_grace_window():
    app = make_mock_app(residency_blob=make_mock_blob(NOW - timedelta(days=3)))
    validate_proof_state(app, ProofType.RESIDENCY, context=AttachmentContext.PAPER, now=NOW)


def test_naive_blob_timestamps_are_treated_as_utc():
    naive = (NOW - timedelta(seconds=5)).replace(tzinfo=None)
    app = make_mock_app(income_blob=make_mock_blob(naive))
    validate_proof_state(app, ProofType.INCOME, now=NOW)


def test_rejected_without_attachment_is_valid():
    app = make_mock_app(income=ProofStatus.REJECTED)
    validate_proof_state(app, ProofType.INCOME, now=NOW)


@pytest.mark.parametrize("status", [MedicalCertificationStatus.APPROVED, MedicalCertificationStatus.RECEIVED])
def test_certification_requires_attachment(status):
    app = make_mock_app(certification=status)
    with pytest.raises(ValidationError, match="must be attached"):
        validate_certification_state(app)


def test_requested_certification_needs_no_attachment():
    validate_certification_state(make_mock_app(certification=MedicalCertificationStatus.REQUESTED))


# ---------------------------------------------------------------------------
# Status write paths
# ---------------------------------------------------------------------------


def test_set_proof_status_restores_previous_on_failure():
    app = make_mock_app(income=ProofStatus.REJECTED)
    with pytest.raises(ValidationError):
        set_proof_status(app, ProofType.INCOME, ProofStatus.APPROVED)
    assert app.income_proof_status == ProofStatus.REJECTED


def test_force_set_only_allows_rejected():
    app = make_mock_app()
    force_set_proof_status(app, ProofType.RESIDENCY, ProofStatus.REJECTED)
    assert app.residency_proof_status == ProofStatus.REJECTED

    with pytest.raises(ValidationError):
        force_set_proof_status(app, ProofType.RESIDENCY, ProofStatus.APPROVED)


def test_refresh_needs_review_sets_and_clears():
    app = make_mock_app(income_blob=make_mock_blob())
    app.needs_review_since = None
    assert refresh_needs_review(app) is True
    assert app.needs_review_since is not None

    # Already set: not newly set again
    assert refresh_needs_review(app) is False

    app.income_proof_status = ProofStatus.APPROVED
    refresh_needs_review(app)
    assert app.needs_review_since is None
