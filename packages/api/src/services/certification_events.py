# This project was developed with assistance from AI tools.
"""Certification-related slices of the audit log."""

import logging
from datetime import datetime

from db import Application
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.timeutil import as_utc
from ..schemas.audit import AuditLogEntry, AuditLogKind, CertificationRequestEntry
from .audit_log import AuditLogBuilder

logger = logging.getLogger(__name__)

_METHOD_KEYS = ("submission_method", "method", "delivery_method")


def filter_certification_entries(entries: list[AuditLogEntry]) -> list[AuditLogEntry]:
    return [entry for entry in entries if "certification" in entry.action]


def _is_request(entry: AuditLogEntry) -> bool:
    if entry.kind == AuditLogKind.STATUS_CHANGE:
        return entry.is_certification_change and entry.to_status == "requested"
    return entry.action == "medical_certification_requested"


def _timestamp(entry: AuditLogEntry) -> datetime:
    raw = entry.metadata.get("timestamp")
    if isinstance(raw, str):
        try:
            return as_utc(datetime.fromisoformat(raw))
        except ValueError:
            logger.debug("Unparseable timestamp %r on %s %s", raw, entry.kind.value, entry.source_id)
    return as_utc(entry.created_at)


def _submission_method(entry: AuditLogEntry) -> str | None:
    for key in _METHOD_KEYS:
        value = entry.metadata.get(key)
        if value:
            return str(value)
    return None


def summarize_request_events(entries: list[AuditLogEntry]) -> list[CertificationRequestEntry]:
    """One row per minute of certification requests, newest first.

    Within a minute the first entry wins unless a later one carries a
    submission method and the kept one does not.
    """
    by_minute: dict[str, CertificationRequestEntry] = {}
    for entry in entries:
        if not _is_request(entry):
            continue
        timestamp = _timestamp(entry)
        key = timestamp.strftime("%Y-%m-%d %H:%M")
        method = _submission_method(entry)
        kept = by_minute.get(key)
        if kept is None or (method and not kept.submission_method):
            by_minute[key] = CertificationRequestEntry(
                timestamp=timestamp,
                actor_name=entry.actor_name or "System",
                submission_method=method,
            )
    return sorted(by_minute.values(), key=lambda r: r.timestamp, reverse=True)


async def certification_events(session: AsyncSession, application: Application) -> list[AuditLogEntry]:
    entries = await AuditLogBuilder(session, application).build_deduplicated_audit_logs()
    return filter_certification_entries(entries)


async def request_events(session: AsyncSession, application: Application) -> list[CertificationRequestEntry]:
    return summarize_request_events(await certification_events(session, application))
