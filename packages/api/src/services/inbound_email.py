# This project was developed with assistance from AI tools.
"""Proof submission by inbound email.

A constituent can mail proof documents to the program mailbox. The message
runs through a fixed sequence of guards before anything is attached:

1. the sender must be a known constituent,
2. their most recent application must be active,
3. the ``proof_submission`` email rate limit must allow another submission,
4. the application must not have used up its proof rejections,
5. there must be at least one attachment and every attachment must pass
   the file checks.

The first failing guard bounces the message: a ``proof_submission_<reason>``
event is written and, when the sender is a constituent, they get a
``proof_submission_error`` notification. Accepted attachments go through
the regular attachment engine with ``submission_method=email``.
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from email import policy
from email.parser import BytesParser
from email.utils import getaddresses

from db import Application, User
from db.enums import ApplicationStatus, ProofStatus, ProofSubmissionMethod, ProofType, UserRole
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import RateLimitExceededError, ValidationError
from ..core.timeutil import utcnow
from .application import get_application
from .audit import record_event_safely
from .blobs import UploadedFile
from .notification import create_and_deliver
from .notification_composer import NotificationAction
from .policy import load_policies
from .proof_attachment import RATE_LIMITED_ACTION, attach_proof
from .proof_validation import validate_file_content, validate_file_metadata
from .rate_limit import RateLimiter, get_rate_limiter
from .storage import StorageService

logger = logging.getLogger(__name__)

_RESIDENCY_WORDS = re.compile(r"\b(residency|address)\b")
_INCOME_WORD = re.compile(r"\bincome\b")


class BounceReason(str, enum.Enum):
    CONSTITUENT_NOT_FOUND = "constituent_not_found"
    INACTIVE_APPLICATION = "inactive_application"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    MAX_REJECTIONS_REACHED = "max_rejections_reached"
    NO_ATTACHMENTS = "no_attachments"
    INVALID_ATTACHMENT = "invalid_attachment"
    ATTACHMENT_FAILED = "attachment_failed"


@dataclass
class InboundMessage:
    sender: str | None
    subject: str
    body: str
    attachments: list[UploadedFile] = field(default_factory=list)


@dataclass
class InboundResult:
    accepted: bool
    application_id: int | None = None
    proof_type: ProofType | None = None
    attached: int = 0
    bounce_reason: BounceReason | None = None
    detail: str | None = None


class _Bounce(Exception):
    def __init__(self, reason: BounceReason, detail: str):
        self.reason = reason
        self.detail = detail
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_inbound_message(raw: bytes) -> InboundMessage:
    """Split raw MIME bytes into sender, subject, plain-text body and attachments."""
    message = BytesParser(policy=policy.default).parsebytes(raw)

    senders = getaddresses([str(message.get("From") or "")])
    sender = senders[0][1].strip().lower() if senders and senders[0][1] else None
    subject = str(message.get("Subject") or "").strip()

    body = ""
    attachments: list[UploadedFile] = []
    for part in message.walk():
        if part.is_multipart():
            continue
        disposition = str(part.get("Content-Disposition") or "").lower()
        filename = part.get_filename()
        if filename or "attachment" in disposition:
            attachments.append(
                UploadedFile(
                    filename=filename or "attachment",
                    content_type=part.get_content_type() or "application/octet-stream",
                    data=part.get_payload(decode=True) or b"",
                )
            )
        elif part.get_content_type() == "text/plain" and not body:
            payload = part.get_payload(decode=True) or b""
            body = payload.decode(part.get_content_charset() or "utf-8", errors="replace")

    return InboundMessage(sender=sender, subject=subject, body=body, attachments=attachments)


def determine_proof_type(subject: str, body: str) -> ProofType:
    """Residency when the text talks about residency or address and not income; income otherwise."""
    text = f"{subject or ''} {body or ''}".lower()
    if _RESIDENCY_WORDS.search(text) and not _INCOME_WORD.search(text):
        return ProofType.RESIDENCY
    return ProofType.INCOME


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


async def _find_constituent(session: AsyncSession, sender: str | None) -> User | None:
    if not sender:
        return None
    stmt = select(User).where(func.lower(User.email) == sender.lower())
    user = (await session.execute(stmt)).scalar_one_or_none()
    if user is None or user.role != UserRole.CONSTITUENT:
        return None
    return user


async def _latest_application(session: AsyncSession, user_id: int) -> Application | None:
    stmt = (
        select(Application)
        .where(Application.user_id == user_id)
        .order_by(Application.application_date.desc(), Application.id.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).unique().scalar_one_or_none()


def _validate_attachments(attachments: list[UploadedFile]) -> None:
    if not attachments:
        raise _Bounce(BounceReason.NO_ATTACHMENTS, "No attachments found in email")
    for attachment in attachments:
        try:
            validate_file_metadata(attachment.filename, attachment.content_type, attachment.size)
            validate_file_content(attachment.data, attachment.content_type)
        except ValidationError as exc:
            raise _Bounce(BounceReason.INVALID_ATTACHMENT, f"Invalid attachment: {exc}") from exc


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def process_inbound_proof_email(
    session: AsyncSession,
    *,
    sender: str | None,
    subject: str,
    body: str,
    attachments: list[UploadedFile],
    rate_limiter: RateLimiter | None = None,
    storage: StorageService | None = None,
) -> InboundResult:
    """Attach the proofs carried by an inbound email, or bounce it.

    Bounces are recorded and committed here; they are reported in the
    result rather than raised.
    """
    user_id: int | None = None
    application_id: int | None = None
    proof_type = determine_proof_type(subject, body)

    try:
        user = await _find_constituent(session, sender)
        if user is None:
            raise _Bounce(BounceReason.CONSTITUENT_NOT_FOUND, "Email sender not recognized as a constituent")
        user_id = user.id

        application = await _latest_application(session, user_id)
        application_id = application.id if application is not None else None
        if application is None or application.status not in ApplicationStatus.active_statuses():
            raise _Bounce(BounceReason.INACTIVE_APPLICATION, "No active application found for this constituent")

        limiter = rate_limiter or get_rate_limiter()
        try:
            limiter.check(
                RATE_LIMITED_ACTION,
                user_id,
                ProofSubmissionMethod.EMAIL.value,
                policies=await load_policies(session),
            )
        except RateLimitExceededError as exc:
            raise _Bounce(BounceReason.RATE_LIMIT_EXCEEDED, str(exc)) from exc

        if (application.total_rejections or 0) >= settings.MAX_PROOF_REJECTIONS:
            raise _Bounce(
                BounceReason.MAX_REJECTIONS_REACHED,
                "Maximum number of proof submission attempts reached",
            )

        _validate_attachments(attachments)

        await record_event_safely(
            session,
            action="proof_submission_received",
            user_id=user_id,
            application_id=application_id,
            event_data={
                "email_subject": subject,
                "email_from": sender,
                "proof_type": proof_type.value,
                "attachment_count": len(attachments),
            },
        )
        attached = 0
        for attachment in attachments:
            try:
                result = await attach_proof(
                    session,
                    application,
                    proof_type,
                    attachment,
                    status=ProofStatus.NOT_REVIEWED,
                    submission_method=ProofSubmissionMethod.EMAIL,
                    metadata={"email_subject": subject, "email_from": sender},
                    storage=storage,
                )
            except ValidationError as exc:
                raise _Bounce(BounceReason.ATTACHMENT_FAILED, f"Failed to attach proof: {exc}") from exc
            if not result.success:
                raise _Bounce(BounceReason.ATTACHMENT_FAILED, f"Failed to attach proof: {result.error}")
            attached += 1
    except _Bounce as bounce:
        await _record_bounce(
            session, bounce, sender=sender, subject=subject, user_id=user_id, application_id=application_id,
        )
        return InboundResult(
            accepted=False,
            application_id=application_id,
            proof_type=proof_type,
            bounce_reason=bounce.reason,
            detail=bounce.detail,
        )

    await record_event_safely(
        session,
        action="proof_submission_processed",
        user_id=user_id,
        application_id=application_id,
        event_data={"proof_type": proof_type.value, "attachment_count": attached},
    )
    await session.commit()
    logger.info(
        "Inbound email from %s attached %d %s proof(s) to application %s",
        sender, attached, proof_type.value, application_id,
    )
    return InboundResult(accepted=True, application_id=application_id, proof_type=proof_type, attached=attached)


async def _record_bounce(
    session: AsyncSession,
    bounce: _Bounce,
    *,
    sender: str | None,
    subject: str,
    user_id: int | None,
    application_id: int | None,
) -> None:
    logger.info("Bounced inbound proof email from %s: %s (%s)", sender, bounce.reason.value, bounce.detail)
    await record_event_safely(
        session,
        action=f"proof_submission_{bounce.reason.value}",
        user_id=user_id,
        application_id=application_id,
        event_data={
            "error": bounce.detail,
            "error_type": bounce.reason.value,
            "sender_email": sender,
            "email_subject": subject,
            "bounce_timestamp": utcnow().isoformat(),
        },
    )
    if user_id is not None:
        # A failed attachment rolls the session back, so reload before notifying.
        recipient = await session.get(User, user_id, populate_existing=True)
        application = await get_application(session, application_id) if application_id else None
        await create_and_deliver(
            session,
            action=NotificationAction.PROOF_SUBMISSION_ERROR,
            recipient=recipient,
            notifiable=application,
            metadata={"error_type": bounce.reason.value, "error": bounce.detail},
        )
    await session.commit()
