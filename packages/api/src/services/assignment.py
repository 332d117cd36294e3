# This project was developed with assistance from AI tools.
"""Voucher, evaluator and trainer assignment.

Each assignment is one transaction: lock the application row, check
eligibility, create the child record, write the event and notifications.
Eligibility failures and database errors, including lock conflicts with a
concurrent assignment, roll the unit back and return None to the caller.
"""

import calendar
import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal

from db import Evaluation, TrainingSession, User, Voucher
from db.enums import (
    ApplicationStatus,
    MedicalCertificationStatus,
    SessionStatus,
    UserRole,
    VoucherStatus,
)
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import ValidationError
from ..core.timeutil import utcnow
from .application import get_application
from .audit import record_event
from .notification import create_and_deliver
from .notification_composer import NotificationAction
from .policy import get_policy

logger = logging.getLogger(__name__)

VOUCHER_CODE_LENGTH = 12
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_voucher_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(VOUCHER_CODE_LENGTH))


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def can_create_voucher(application, *, has_voucher: bool) -> bool:
    return (
        application.status == ApplicationStatus.APPROVED
        and application.medical_certification_status == MedicalCertificationStatus.APPROVED
        and not has_voucher
    )


async def _voucher_count(session: AsyncSession, application_id: int) -> int:
    stmt = select(func.count(Voucher.id)).where(Voucher.application_id == application_id)
    return (await session.execute(stmt)).scalar_one()


async def _locked_application(session: AsyncSession, application_id: int):
    application = await get_application(session, application_id, lock=True)
    if application is None:
        raise ValidationError(f"Application {application_id} not found")
    return application


def _require_role(user: User, roles: set[UserRole], label: str) -> None:
    if user is None or user.role not in roles:
        raise ValidationError(f"User {getattr(user, 'id', None)} cannot be assigned as {label}")


# ---------------------------------------------------------------------------
# Voucher
# ---------------------------------------------------------------------------


async def assign_voucher(
    session: AsyncSession,
    application_id: int,
    *,
    actor: User | None = None,
) -> Voucher | None:
    """Issue the application's single voucher, or return None if it can't have one."""
    try:
        application = await _locked_application(session, application_id)
        has_voucher = await _voucher_count(session, application_id) > 0
        if not can_create_voucher(application, has_voucher=has_voucher):
            raise ValidationError(
                f"Application {application_id} is not eligible for a voucher "
                f"(status={application.status.value}, "
                f"certification={application.medical_certification_status.value}, "
                f"has_voucher={has_voucher})"
            )

        value = Decimal(await get_policy(session, "voucher_value") or 0)
        months = await get_policy(session, "voucher_validity_period_months") or 0
        issued_at = utcnow()
        voucher = Voucher(
            application_id=application_id,
            code=generate_voucher_code(),
            status=VoucherStatus.ACTIVE,
            initial_value=value,
            remaining_value=value,
            issued_at=issued_at,
            expires_at=add_months(issued_at, months),
        )
        session.add(voucher)
        await session.flush()

        await record_event(
            session,
            action="voucher_assigned",
            user_id=actor.id if actor else None,
            application_id=application_id,
            auditable_type="Voucher",
            auditable_id=voucher.id,
            event_data={
                "application_id": application_id,
                "voucher_id": voucher.id,
                "voucher_code": voucher.code,
                "initial_value": str(value),
                "expires_at": voucher.expires_at.isoformat(),
            },
        )
        await create_and_deliver(
            session,
            action=NotificationAction.VOUCHER_ASSIGNED,
            recipient=application.user,
            actor=actor,
            notifiable=application,
            metadata={"voucher_code": voucher.code, "voucher_value": str(value)},
        )
        await session.commit()
    except (DBAPIError, ValidationError) as exc:
        await session.rollback()
        logger.warning("Voucher assignment failed for application %s: %s", application_id, exc)
        return None

    logger.info("Voucher %s issued for application %s", voucher.id, application_id)
    return voucher


# ---------------------------------------------------------------------------
# Evaluator / trainer
# ---------------------------------------------------------------------------


async def assign_evaluator(
    session: AsyncSession,
    application_id: int,
    evaluator: User,
    *,
    actor: User | None = None,
) -> Evaluation | None:
    try:
        _require_role(evaluator, {UserRole.EVALUATOR, UserRole.ADMIN}, "evaluator")
        application = await _locked_application(session, application_id)

        evaluation = Evaluation(
            application_id=application_id,
            evaluator_id=evaluator.id,
            constituent_id=application.user_id,
            status=SessionStatus.REQUESTED,
        )
        session.add(evaluation)
        await session.flush()

        await record_event(
            session,
            action="evaluator_assigned",
            user_id=actor.id if actor else None,
            application_id=application_id,
            auditable_type="Evaluation",
            auditable_id=evaluation.id,
            event_data={
                "application_id": application_id,
                "evaluator_id": evaluator.id,
                "evaluator_name": evaluator.full_name,
            },
        )
        context = {"evaluator_name": evaluator.full_name}
        await create_and_deliver(
            session,
            action=NotificationAction.EVALUATOR_ASSIGNED,
            recipient=application.user,
            actor=actor,
            notifiable=application,
            metadata=context,
            deliver=False,
        )
        await create_and_deliver(
            session,
            action=NotificationAction.EVALUATOR_ASSIGNED,
            recipient=evaluator,
            actor=actor,
            notifiable=application,
            metadata={**context, "constituent_name": application.user.full_name},
        )
        await session.commit()
    except (DBAPIError, ValidationError) as exc:
        await session.rollback()
        logger.warning("Evaluator assignment failed for application %s: %s", application_id, exc)
        return None
    return evaluation


async def assign_trainer(
    session: AsyncSession,
    application_id: int,
    trainer: User,
    *,
    actor: User | None = None,
) -> TrainingSession | None:
    try:
        _require_role(trainer, {UserRole.TRAINER, UserRole.ADMIN}, "trainer")
        application = await _locked_application(session, application_id)

        training_session = TrainingSession(
            application_id=application_id,
            trainer_id=trainer.id,
            status=SessionStatus.REQUESTED,
        )
        session.add(training_session)
        await session.flush()

        await record_event(
            session,
            action="trainer_assigned",
            user_id=actor.id if actor else None,
            application_id=application_id,
            auditable_type="TrainingSession",
            auditable_id=training_session.id,
            event_data={
                "application_id": application_id,
                "trainer_id": trainer.id,
                "trainer_name": trainer.full_name,
            },
        )
        context = {
            "trainer_name": trainer.full_name,
            "constituent_name": application.user.full_name,
            "training_session_status": SessionStatus.REQUESTED.value,
        }
        await create_and_deliver(
            session,
            action=NotificationAction.TRAINER_ASSIGNED,
            recipient=application.user,
            actor=actor,
            notifiable=application,
            metadata=context,
            deliver=False,
        )
        await create_and_deliver(
            session,
            action=NotificationAction.TRAINER_ASSIGNED,
            recipient=trainer,
            actor=actor,
            notifiable=application,
            metadata=context,
        )
        await session.commit()
    except (DBAPIError, ValidationError) as exc:
        await session.rollback()
        logger.warning("Trainer assignment failed for application %s: %s", application_id, exc)
        return None
    return training_session
