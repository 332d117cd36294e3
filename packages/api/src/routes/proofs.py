# This project was developed with assistance from AI tools.
"""Proof submission, review and purge routes."""

import logging

from db import get_db
from db.enums import ProofStatus, ProofSubmissionMethod, ProofType, UserRole
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, require_roles
from ..schemas.application import ApplicationResponse
from ..schemas.proof import (
    AttachmentResponse,
    ProofRejectionRequest,
    ProofReviewRequest,
    ProofReviewResponse,
    SignedBlobResponse,
)
from ..services import proof_attachment
from ..services.blobs import UploadedFile, create_blob, sign_blob_id
from ..services.proof_review import review_proof
from ..services.proof_validation import AttachmentContext
from ..services.rate_limit import get_rate_limiter
from ..services.storage import get_storage_service
from .applications import load_application

logger = logging.getLogger(__name__)

router = APIRouter()

_ADMIN = Depends(require_roles(UserRole.ADMIN))
_SUBMITTERS = Depends(require_roles(UserRole.ADMIN, UserRole.CONSTITUENT))


async def _read_upload(file: UploadFile) -> UploadedFile:
    return UploadedFile(
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
        data=await file.read(),
    )


@router.post(
    "/{application_id}/blobs",
    response_model=SignedBlobResponse,
    status_code=201,
    dependencies=[_SUBMITTERS],
)
async def direct_upload(
    application_id: int,
    user: CurrentUser,
    attachment_name: str = Form(default="upload"),
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_db),
) -> SignedBlobResponse:
    """Store a file now and hand back a signed reference to attach later."""
    await load_application(session, application_id, user)
    blob = await create_blob(
        session,
        get_storage_service(),
        await _read_upload(file),
        application_id=application_id,
        attachment_name=attachment_name,
    )
    await session.commit()
    return SignedBlobResponse(
        blob_id=blob.id,
        signed_id=sign_blob_id(blob.id),
        byte_size=blob.byte_size,
        content_type=blob.content_type,
    )


@router.post(
    "/{application_id}/proofs/{proof_type}",
    response_model=AttachmentResponse,
    status_code=201,
    dependencies=[_SUBMITTERS],
)
async def submit_proof(
    application_id: int,
    proof_type: ProofType,
    user: CurrentUser,
    file: UploadFile | None = File(default=None),
    signed_id: str | None = Form(default=None),
    proof_status: ProofStatus = Form(default=ProofStatus.NOT_REVIEWED, alias="status"),
    submission_method: ProofSubmissionMethod = Form(default=ProofSubmissionMethod.WEB),
    paper: bool = Form(default=False),
    session: AsyncSession = Depends(get_db),
) -> AttachmentResponse:
    """Attach a proof from an upload or a signed reference.

    Constituents always submit ``not_reviewed`` proofs through the web
    channel and are rate limited; admins may set the status, the channel and
    the paper intake context.
    """
    application = await load_application(session, application_id, user)
    if file is not None:
        proof_file = await _read_upload(file)
    elif signed_id:
        proof_file = signed_id
    else:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Either a file or a signed_id is required",
        )

    admin = user if user.is_admin else None
    result = await proof_attachment.attach_proof(
        session,
        application,
        proof_type,
        proof_file,
        status=proof_status if admin else ProofStatus.NOT_REVIEWED,
        admin=admin,
        submission_method=submission_method if admin else ProofSubmissionMethod.WEB,
        context=AttachmentContext.PAPER if admin and paper else AttachmentContext.STANDARD,
        rate_limiter=None if admin else get_rate_limiter(),
    )
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Proof could not be stored: {result.error}",
        )
    return AttachmentResponse(
        application_id=application_id,
        proof_type=proof_type,
        proof_status=application.proof_status(proof_type),
        success=True,
        duration_ms=result.duration_ms,
        blob_size=result.blob_size,
    )


@router.post(
    "/{application_id}/proofs/{proof_type}/review",
    response_model=ProofReviewResponse,
    status_code=201,
    dependencies=[_ADMIN],
)
async def review(
    application_id: int,
    proof_type: ProofType,
    body: ProofReviewRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> ProofReviewResponse:
    application = await load_application(session, application_id, user)
    proof_review = await review_proof(
        session,
        application,
        user,
        proof_type,
        body.status,
        rejection_reason=body.rejection_reason,
        notes=body.notes,
        submission_method=body.submission_method,
    )
    return ProofReviewResponse.model_validate(proof_review)


@router.post(
    "/{application_id}/proofs/{proof_type}/reject-missing",
    response_model=ProofReviewResponse,
    status_code=201,
    dependencies=[_ADMIN],
)
async def reject_missing_proof(
    application_id: int,
    proof_type: ProofType,
    user: CurrentUser,
    body: ProofRejectionRequest | None = None,
    session: AsyncSession = Depends(get_db),
) -> ProofReviewResponse:
    body = body or ProofRejectionRequest()
    application = await load_application(session, application_id, user)
    proof_review = await proof_attachment.reject_proof_without_attachment(
        session, application, proof_type, admin=user, reason=body.reason, notes=body.notes,
    )
    return ProofReviewResponse.model_validate(proof_review)


@router.delete("/{application_id}/proofs", response_model=ApplicationResponse, dependencies=[_ADMIN])
async def purge(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    application = await load_application(session, application_id, user)
    await proof_attachment.purge_proofs(session, application, user)
    return ApplicationResponse.model_validate(application)
