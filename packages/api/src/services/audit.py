# This project was developed with assistance from AI tools.
"""Audit event service.

Writes append-only ``events`` rows with a SHA-256 hash chain for tamper
evidence. On PostgreSQL an advisory lock serialises hash computation
across concurrent writers; other backends rely on their own write locking.

``record_event`` raises like any other write and belongs inside the unit
of work it documents. ``record_event_safely`` wraps the insert in a
savepoint and only logs on failure, for audit rows that must never block
the business operation they describe.
"""

import hashlib
import json
import logging

from db import Event
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.timeutil import as_utc

logger = logging.getLogger(__name__)

# Fixed advisory lock key for audit trail serialization.
AUDIT_LOCK_KEY = 900_001


def _compute_hash(event_id: int, created_at, event_data: dict | None) -> str:
    """Compute SHA-256 hash of an event's key fields."""
    stamp = as_utc(created_at).isoformat() if created_at is not None else ""
    payload = f"{event_id}|{stamp}|{json.dumps(event_data, sort_keys=True, default=str)}"
    return hashlib.sha256(payload.encode()).hexdigest()


def _dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


async def record_event(
    session: AsyncSession,
    *,
    action: str,
    user_id: int | None = None,
    application_id: int | None = None,
    auditable_type: str | None = None,
    auditable_id: int | None = None,
    event_data: dict | None = None,
) -> Event:
    """Write a single event with hash chain linkage.

    Args:
        session: Database session.
        action: Event name (e.g. 'voucher_assigned', 'income_proof_submitted').
        user_id: Acting user, if any.
        application_id: Related application, if any.
        auditable_type: Class name of the subject record.
        auditable_id: Primary key of the subject record.
        event_data: Arbitrary JSON-serializable event payload.

    Returns:
        The created Event row (with prev_hash set).
    """
    if _dialect_name(session) == "postgresql":
        # Released automatically when the transaction commits or rolls back.
        await session.execute(text(f"SELECT pg_advisory_xact_lock({AUDIT_LOCK_KEY})"))

    latest_stmt = select(Event).order_by(Event.id.desc()).limit(1)
    result = await session.execute(latest_stmt)
    prev_event = result.scalar_one_or_none()

    if prev_event is not None:
        prev_hash = _compute_hash(prev_event.id, prev_event.created_at, prev_event.event_data)
    else:
        prev_hash = "genesis"

    if application_id is not None and auditable_type is None:
        auditable_type, auditable_id = "Application", application_id

    event = Event(
        action=action,
        user_id=user_id,
        application_id=application_id,
        auditable_type=auditable_type,
        auditable_id=auditable_id,
        event_data=event_data,
        prev_hash=prev_hash,
    )
    session.add(event)
    await session.flush()
    return event


async def record_event_safely(session: AsyncSession, **kwargs) -> Event | None:
    """Like record_event, but a failure is logged and rolled back to a savepoint."""
    try:
        async with session.begin_nested():
            return await record_event(session, **kwargs)
    except Exception:
        logger.exception(
            "Failed to record audit event %s (application_id=%s)",
            kwargs.get("action"),
            kwargs.get("application_id"),
        )
        return None


async def verify_audit_chain(session: AsyncSession) -> dict:
    """Verify the integrity of the event hash chain.

    Returns:
        {"status": "OK", "events_checked": N} on success, or
        {"status": "TAMPERED", "first_break_id": id, "events_checked": N}
        if a mismatch is found.
    """
    result = await session.execute(select(Event).order_by(Event.id.asc()))
    events = list(result.scalars().all())

    for i, event in enumerate(events):
        if i == 0:
            expected = "genesis"
        else:
            prev = events[i - 1]
            expected = _compute_hash(prev.id, prev.created_at, prev.event_data)

        if event.prev_hash != expected:
            return {
                "status": "TAMPERED",
                "first_break_id": event.id,
                "events_checked": i + 1,
            }

    return {"status": "OK", "events_checked": len(events)}


async def count_events(
    session: AsyncSession,
    *,
    action: str | None = None,
    application_id: int | None = None,
) -> int:
    stmt = select(func.count(Event.id))
    if action is not None:
        stmt = stmt.where(Event.action == action)
    if application_id is not None:
        stmt = stmt.where(Event.application_id == application_id)
    return (await session.execute(stmt)).scalar_one()


async def get_application_events(
    session: AsyncSession,
    application_id: int,
    actions: list[str] | None = None,
) -> list[Event]:
    """Events recorded against an application, newest first."""
    stmt = select(Event).where(Event.application_id == application_id)
    if actions:
        stmt = stmt.where(Event.action.in_(actions))
    stmt = stmt.order_by(Event.created_at.desc(), Event.id.desc())
    result = await session.execute(stmt)
    return list(result.unique().scalars().all())
