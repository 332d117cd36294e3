# This project was developed with assistance from AI tools.
"""Inbound email webhook for the proof submission mailbox."""

import hmac

from db import get_db
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..schemas.proof import InboundEmailResponse
from ..services.inbound_email import parse_inbound_message, process_inbound_proof_email

router = APIRouter()


def _check_relay_token(token: str | None) -> None:
    expected = settings.INBOUND_EMAIL_TOKEN
    if not expected or not token or not hmac.compare_digest(token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid inbound relay token",
        )


@router.post("/proof-submissions", response_model=InboundEmailResponse, status_code=202)
async def receive_proof_email(
    request: Request,
    x_inbound_token: str | None = Header(default=None),
    session: AsyncSession = Depends(get_db),
) -> InboundEmailResponse:
    """Accept a raw RFC 822 message from the mail relay.

    Bounced messages still return 202 so the relay does not retry them.
    """
    _check_relay_token(x_inbound_token)
    message = parse_inbound_message(await request.body())
    result = await process_inbound_proof_email(
        session,
        sender=message.sender,
        subject=message.subject,
        body=message.body,
        attachments=message.attachments,
    )
    return InboundEmailResponse(
        accepted=result.accepted,
        application_id=result.application_id,
        proof_type=result.proof_type,
        attached=result.attached,
        bounce_reason=result.bounce_reason.value if result.bounce_reason else None,
        detail=result.detail,
    )
