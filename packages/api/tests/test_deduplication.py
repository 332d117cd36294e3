# This project was developed with assistance from AI tools.
"""Tests for audit log deduplication."""

from datetime import UTC, datetime, timedelta

from src.schemas.audit import AuditLogEntry, AuditLogKind
from src.services.deduplication import deduplicate, fingerprint, generic_action

T0 = datetime(2026, 3, 1, 12, 0, 5, tzinfo=UTC)


def _entry(kind, action, at=T0, source_id=1, **fields) -> AuditLogEntry:
    return AuditLogEntry(kind=kind, source_id=source_id, action=action, created_at=at, **fields)


def _cert_change(at=T0, source_id=1) -> AuditLogEntry:
    return _entry(
        AuditLogKind.STATUS_CHANGE,
        "medical_certification_status_changed",
        at=at,
        source_id=source_id,
        from_status="not_requested",
        to_status="requested",
        metadata={"change_type": "medical_certification"},
    )


def test_generic_action_for_certification_change():
    assert generic_action(_cert_change()) == "medical_certification_requested"


def test_generic_action_for_submission_normalizes_suffix():
    entry = _entry(AuditLogKind.EVENT, "income_proof_submitted")
    assert generic_action(entry) == "income_proof_submission"


def test_status_change_fingerprint_includes_transition():
    entry = _entry(
        AuditLogKind.STATUS_CHANGE, "status_changed", from_status="in_progress", to_status="approved"
    )
    assert fingerprint(entry) == "status_change_approved_in_progress-approved"


def test_proof_review_fingerprint():
    entry = _entry(AuditLogKind.PROOF_REVIEW, "income_proof_rejected", proof_type="income", status="rejected")
    assert fingerprint(entry) == "proof_rejected_income-rejected"


def test_status_change_beats_event_and_notification():
    """One certification request recorded three ways collapses to the status change."""
    change = _cert_change(source_id=10)
    event = _entry(AuditLogKind.EVENT, "medical_certification_requested", at=T0 + timedelta(seconds=2), source_id=11)
    notification = _entry(
        AuditLogKind.NOTIFICATION, "medical_certification_requested", at=T0 + timedelta(seconds=3), source_id=12
    )

    result = deduplicate([notification, event, change], window_seconds=60)

    assert len(result) == 1
    assert result[0].kind == AuditLogKind.STATUS_CHANGE
    assert result[0].source_id == 10


def test_equal_priority_keeps_latest():
    submission = _entry(
        AuditLogKind.PROOF_SUBMISSION,
        "income_proof_submitted",
        source_id=1,
        metadata={"proof_type": "income", "submission_method": "web"},
    )
    event = _entry(
        AuditLogKind.EVENT,
        "income_proof_submitted",
        at=T0 + timedelta(seconds=1),
        source_id=2,
        metadata={"proof_type": "income", "submission_method": "web"},
    )

    result = deduplicate([submission, event], window_seconds=60)

    assert [e.source_id for e in result] == [2]


def test_different_channels_are_not_merged():
    web = _entry(
        AuditLogKind.PROOF_SUBMISSION,
        "income_proof_submitted",
        source_id=1,
        metadata={"proof_type": "income", "submission_method": "web"},
    )
    email = _entry(
        AuditLogKind.PROOF_SUBMISSION,
        "income_proof_submitted",
        source_id=2,
        metadata={"proof_type": "income", "submission_method": "email"},
    )
    assert len(deduplicate([web, email], window_seconds=60)) == 2


def test_different_buckets_are_kept_and_sorted_newest_first():
    first = _entry(AuditLogKind.NOTIFICATION, "proof_approved", at=T0, source_id=1)
    second = _entry(AuditLogKind.NOTIFICATION, "proof_approved", at=T0 + timedelta(minutes=1), source_id=2)

    result = deduplicate([first, second], window_seconds=60)

    assert [e.source_id for e in result] == [2, 1]


def test_empty_input():
    assert deduplicate([]) == []
