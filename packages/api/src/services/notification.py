# This project was developed with assistance from AI tools.
"""Notification service.

Recording and delivering a notification are separate steps. ``create_and_deliver``
persists the ``Notification`` row inside the caller's transaction and, when a
mailer route exists for the action, enqueues a delivery job in that same
transaction. The job runs after commit, so a transport failure can only
mark the notification as ``error``; it never rolls back the state change
that produced it.
"""

import logging
from dataclasses import dataclass

from db import Application, EmailTemplate, Notification, User
from db.enums import DeliveryStatus, UserRole
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import DeliveryError, ValidationError
from ..core.timeutil import utcnow
from .audit import record_event_safely
from .jobs import DELIVER_NOTIFICATION, NOTIFY_ADMINS, enqueue_job, register_handler
from .mailer import get_email_template, get_mailer
from .notification_composer import NotificationAction, compose_message, humanize

logger = logging.getLogger(__name__)

VALID_CHANNELS = frozenset({"email"})
DEFAULT_CHANNEL = "email"


@dataclass(frozen=True)
class MailerRoute:
    """Which mailer handles an action, and which of its templates to render."""

    mailer: str
    method: str

    @property
    def template_name(self) -> str:
        return f"{self.mailer}_{self.method}"


_APPLICATION = "application_notifications"
_MEDICAL_PROVIDER = "medical_provider"
_TRAINING = "training_session_notifications"
_EVALUATOR = "evaluator_notifications"
_VOUCHER = "voucher_notifications"

_MAILER_ROUTES: dict[NotificationAction, MailerRoute] = {
    NotificationAction.PROOF_REJECTED: MailerRoute(_APPLICATION, "proof_rejected"),
    NotificationAction.INCOME_PROOF_REJECTED: MailerRoute(_APPLICATION, "proof_rejected"),
    NotificationAction.RESIDENCY_PROOF_REJECTED: MailerRoute(_APPLICATION, "proof_rejected"),
    NotificationAction.PROOF_APPROVED: MailerRoute(_APPLICATION, "proof_approved"),
    NotificationAction.INCOME_PROOF_ATTACHED: MailerRoute(_APPLICATION, "proof_received"),
    NotificationAction.RESIDENCY_PROOF_ATTACHED: MailerRoute(_APPLICATION, "proof_received"),
    NotificationAction.PROOF_SUBMITTED: MailerRoute(_APPLICATION, "proof_needs_review"),
    NotificationAction.PROOF_SUBMISSION_ERROR: MailerRoute(_APPLICATION, "proof_submission_error"),
    NotificationAction.MAX_REJECTIONS_REACHED: MailerRoute(_APPLICATION, "max_rejections_reached"),
    NotificationAction.MEDICAL_CERTIFICATION_REQUESTED: MailerRoute(_MEDICAL_PROVIDER, "requested"),
    NotificationAction.MEDICAL_CERTIFICATION_RECEIVED: MailerRoute(_MEDICAL_PROVIDER, "received"),
    NotificationAction.MEDICAL_CERTIFICATION_APPROVED: MailerRoute(_MEDICAL_PROVIDER, "approved"),
    NotificationAction.MEDICAL_CERTIFICATION_REJECTED: MailerRoute(_MEDICAL_PROVIDER, "rejected"),
    NotificationAction.TRAINER_ASSIGNED: MailerRoute(_TRAINING, "trainer_assigned"),
    NotificationAction.EVALUATOR_ASSIGNED: MailerRoute(_EVALUATOR, "new_evaluation_assigned"),
    NotificationAction.VOUCHER_ASSIGNED: MailerRoute(_VOUCHER, "voucher_assigned"),
}


def resolve_mailer(action) -> MailerRoute | None:
    """Mailer route for ``action``, or None (logged) when the action has no email."""
    kind = NotificationAction.parse(action)
    route = _MAILER_ROUTES.get(kind) if kind is not None else None
    if route is None:
        logger.warning("No mailer mapped for notification action '%s'", action)
    return route


def _normalize_channel(channel) -> str:
    value = str(channel or DEFAULT_CHANNEL).lower()
    if value not in VALID_CHANNELS:
        logger.warning("Invalid notification channel '%s', falling back to %s", channel, DEFAULT_CHANNEL)
        return DEFAULT_CHANNEL
    return value


def _action_value(action) -> str:
    return action.value if isinstance(action, NotificationAction) else str(action)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_and_deliver(
    session: AsyncSession,
    *,
    action,
    recipient: User,
    actor: User | None = None,
    notifiable=None,
    metadata: dict | None = None,
    channel: str = DEFAULT_CHANNEL,
    deliver: bool = True,
    audit: bool = False,
) -> Notification | None:
    """Persist a notification and enqueue its delivery.

    Returns None (after logging) when the row cannot be persisted; callers
    treat a missing notification as non-fatal.
    """
    action_name = _action_value(action)
    channel = _normalize_channel(channel)
    data = {str(k): v for k, v in (metadata or {}).items()}
    data.update(
        {
            "timestamp": utcnow().isoformat(),
            "created_by_service": True,
            "channel": channel,
        }
    )
    if audit:
        data["audit"] = True

    notification = Notification(
        recipient_id=getattr(recipient, "id", None),
        actor_id=getattr(actor, "id", None),
        action=action_name,
        notifiable_type=type(notifiable).__name__ if notifiable is not None else None,
        notifiable_id=getattr(notifiable, "id", None),
        message=compose_message(action_name, notifiable, actor, data),
        delivery_status=DeliveryStatus.PENDING,
        notification_data=data,
    )

    try:
        async with session.begin_nested():
            session.add(notification)
            await session.flush()
    except Exception:
        logger.exception(
            "Failed to persist notification %s for recipient %s",
            action_name, getattr(recipient, "id", None),
        )
        return None

    if audit:
        await record_event_safely(
            session,
            action=f"notification_{action_name}_created",
            user_id=notification.actor_id,
            application_id=notification.notifiable_id if notification.notifiable_type == "Application" else None,
            auditable_type="Notification",
            auditable_id=notification.id,
            event_data={"recipient_id": notification.recipient_id, "channel": channel},
        )

    if deliver and resolve_mailer(action_name) is not None:
        enqueue_job(session, DELIVER_NOTIFICATION, {"notification_id": notification.id})

    return notification


async def notify_admins(
    session: AsyncSession,
    *,
    action,
    actor: User | None = None,
    notifiable=None,
    metadata: dict | None = None,
) -> list[Notification]:
    """Create one notification per administrator; individual failures are skipped."""
    admins = (await session.execute(select(User).where(User.role == UserRole.ADMIN))).scalars().all()
    created = []
    for admin in admins:
        notification = await create_and_deliver(
            session,
            action=action,
            recipient=admin,
            actor=actor,
            notifiable=notifiable,
            metadata=metadata,
        )
        if notification is not None:
            created.append(notification)
    return created


# ---------------------------------------------------------------------------
# Deliver (job side)
# ---------------------------------------------------------------------------


def _fallback_template(route: MailerRoute, action: str) -> EmailTemplate:
    return EmailTemplate(name=route.template_name, subject=humanize(action), body="%<message>s")


async def _recipient_address(
    session: AsyncSession,
    route: MailerRoute,
    notification: Notification,
) -> tuple[str | None, Application | None]:
    application = None
    if notification.notifiable_type == "Application" and notification.notifiable_id is not None:
        application = await session.get(Application, notification.notifiable_id)
    if route.mailer == _MEDICAL_PROVIDER and application is not None:
        return application.medical_provider_email, application
    return notification.recipient.email if notification.recipient else None, application


def _template_variables(notification: Notification, application: Application | None) -> dict:
    recipient = notification.recipient
    variables = {
        key: value
        for key, value in (notification.notification_data or {}).items()
        if isinstance(value, (str, int, float))
    }
    variables.update(
        {
            "message": notification.message or "",
            "user_first_name": recipient.first_name if recipient else "",
            "user_full_name": recipient.full_name if recipient else "",
            "application_id": notification.notifiable_id or "",
        }
    )
    if application is not None:
        variables["medical_provider_name"] = application.medical_provider_name or ""
        variables["constituent_full_name"] = application.user.full_name if application.user else ""
    return variables


async def _mark_error(
    session: AsyncSession,
    notification: Notification,
    message: str,
) -> None:
    data = dict(notification.notification_data or {})
    data["delivery_error"] = {
        "channel": data.get("channel", DEFAULT_CHANNEL),
        "message": message,
        "error_at": utcnow().isoformat(),
    }
    notification.notification_data = data
    notification.delivery_status = DeliveryStatus.ERROR
    if data.get("audit"):
        await record_event_safely(
            session,
            action=f"notification_{notification.action}_failed",
            user_id=notification.actor_id,
            auditable_type="Notification",
            auditable_id=notification.id,
            event_data={"error": message},
        )
    await session.commit()


async def deliver_notification(session: AsyncSession, notification_id: int, *, mailer=None) -> Notification | None:
    """Send a persisted notification and record the outcome in place.

    Already-sent notifications are left untouched, so redelivery is safe.
    Transport failures mark the row ``error`` and re-raise DeliveryError for
    the job runner to retry; template problems mark ``error`` without retry.
    """
    notification = await session.get(Notification, notification_id, populate_existing=True)
    if notification is None:
        logger.warning("Notification %s vanished before delivery", notification_id)
        return None
    if notification.delivery_status == DeliveryStatus.SENT:
        return notification

    route = resolve_mailer(notification.action)
    if route is None:
        return notification

    mailer = mailer or get_mailer()
    address, application = await _recipient_address(session, route, notification)
    template = await get_email_template(session, route.template_name)
    if template is None:
        template = _fallback_template(route, notification.action)

    try:
        if not address:
            raise ValidationError(f"No delivery address for notification {notification.id}")
        result = await mailer.send(template, address, _template_variables(notification, application))
    except ValidationError as exc:
        logger.error("Notification %s cannot be rendered: %s", notification.id, exc)
        await _mark_error(session, notification, str(exc))
        return notification
    except Exception as exc:
        logger.exception("Notification %s transport failure", notification.id)
        await _mark_error(session, notification, str(exc))
        raise DeliveryError(str(exc)) from exc

    if not result.success:
        await _mark_error(session, notification, result.error or "delivery failed")
        raise DeliveryError(result.error or "delivery failed")

    notification.delivery_status = DeliveryStatus.SENT
    notification.message_id = result.message_id
    if (notification.notification_data or {}).get("audit"):
        await record_event_safely(
            session,
            action=f"notification_{notification.action}_sent",
            user_id=notification.actor_id,
            auditable_type="Notification",
            auditable_id=notification.id,
            event_data={"message_id": result.message_id},
        )
    await session.commit()
    return notification


@register_handler(DELIVER_NOTIFICATION)
async def _deliver_notification_job(session: AsyncSession, payload: dict) -> None:
    await deliver_notification(session, int(payload["notification_id"]))


@register_handler(NOTIFY_ADMINS)
async def _notify_admins_job(session: AsyncSession, payload: dict) -> None:
    application = await session.get(Application, int(payload["application_id"]))
    if application is None:
        return
    await notify_admins(
        session,
        action=NotificationAction.PROOF_SUBMITTED,
        actor=application.user,
        notifiable=application,
        metadata={"proof_types": payload.get("proof_types", [])},
    )
    await session.commit()
