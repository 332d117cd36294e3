# This project was developed with assistance from AI tools.
"""Audit trail maintenance routes (admin only)."""

from db import get_db
from db.enums import UserRole
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import require_roles
from ..schemas.audit import AuditChainVerifyResponse
from ..services.audit import verify_audit_chain

router = APIRouter()


@router.get(
    "/verify",
    response_model=AuditChainVerifyResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def verify_chain(session: AsyncSession = Depends(get_db)) -> AuditChainVerifyResponse:
    """Walk the event hash chain and report the first break, if any."""
    result = await verify_audit_chain(session)
    return AuditChainVerifyResponse(**result)
