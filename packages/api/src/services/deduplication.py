# This project was developed with assistance from AI tools.
"""Collapse duplicate facts in an application's audit log.

The same occurrence is often recorded several times (a status change, its
event and the notification it produced). Entries are grouped by a
fingerprint and a time bucket; each group keeps its most authoritative
entry.
"""

import re

from ..core.config import settings
from ..core.timeutil import as_utc
from ..schemas.audit import AuditLogEntry, AuditLogKind

_PROOF_SUBMITTED = re.compile(r"_proof_submitted$")

_PRIORITY = {
    AuditLogKind.STATUS_CHANGE: 3,
    AuditLogKind.PROOF_REVIEW: 2,
    AuditLogKind.EVENT: 2,
    AuditLogKind.PROOF_SUBMISSION: 2,
    AuditLogKind.NOTIFICATION: 1,
}


def generic_action(entry: AuditLogEntry) -> str:
    if entry.kind == AuditLogKind.STATUS_CHANGE:
        if entry.is_certification_change:
            return f"medical_certification_{entry.to_status}"
        return f"status_change_{entry.to_status}"
    if entry.kind == AuditLogKind.PROOF_REVIEW:
        return f"proof_{entry.status}"
    return _PROOF_SUBMITTED.sub("_submission", entry.action)


def _details(entry: AuditLogEntry) -> str | None:
    if entry.kind == AuditLogKind.STATUS_CHANGE:
        return None if entry.is_certification_change else f"{entry.from_status}-{entry.to_status}"
    if entry.kind == AuditLogKind.PROOF_REVIEW:
        return f"{entry.proof_type}-{entry.status}"
    if entry.kind == AuditLogKind.PROOF_SUBMISSION or "proof_submitted" in entry.action:
        return f"{entry.metadata.get('proof_type')}-{entry.metadata.get('submission_method')}"
    return None


def fingerprint(entry: AuditLogEntry) -> str:
    return "_".join(part for part in (generic_action(entry), _details(entry)) if part)


def _bucket(entry: AuditLogEntry, window: int) -> int:
    return int(as_utc(entry.created_at).timestamp()) // window * window


def deduplicate(entries: list[AuditLogEntry], window_seconds: int | None = None) -> list[AuditLogEntry]:
    """Keep the highest-priority, then latest, entry per (fingerprint, time bucket)."""
    if not entries:
        return []
    window = window_seconds or settings.AUDIT_DEDUP_WINDOW_SECONDS

    groups: dict[tuple[str, int], list[AuditLogEntry]] = {}
    for entry in entries:
        groups.setdefault((fingerprint(entry), _bucket(entry, window)), []).append(entry)

    best = [
        max(group, key=lambda e: (_PRIORITY.get(e.kind, 0), as_utc(e.created_at)))
        for group in groups.values()
    ]
    return sorted(best, key=lambda e: as_utc(e.created_at), reverse=True)
