# This project was developed with assistance from AI tools.
"""Application lifecycle routes with RBAC enforcement."""

import logging

from db import Application, User, get_db
from db.enums import ApplicationStatus, MedicalCertificationStatus, ProofSubmissionMethod, UserRole
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, require_roles
from ..schemas.application import (
    ApplicationCreate,
    ApplicationResponse,
    AssignmentRequest,
    AssignmentResponse,
    BatchStatusRequest,
    BatchStatusResponse,
    StatusUpdateRequest,
    TransitionRequest,
    VoucherResponse,
)
from ..schemas.audit import AuditLogResponse, CertificationHistoryResponse
from ..services import application as app_service
from ..services import assignment, certification
from ..services.audit_log import AuditLogBuilder
from ..services.blobs import UploadedFile
from ..services.certification_events import filter_certification_entries, summarize_request_events

logger = logging.getLogger(__name__)

router = APIRouter()

_ADMIN = Depends(require_roles(UserRole.ADMIN))


async def load_application(session: AsyncSession, application_id: int, user: User) -> Application:
    """Fetch an application the user may see, or raise 404/403."""
    application = await app_service.get_application(session, application_id)
    if application is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")
    if not user.is_admin and user.id not in (application.user_id, application.managing_guardian_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return application


async def _load_user(session: AsyncSession, user_id: int) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@router.post(
    "/",
    response_model=ApplicationResponse,
    status_code=201,
    dependencies=[Depends(require_roles(UserRole.ADMIN, UserRole.CONSTITUENT))],
)
async def create_application(
    body: ApplicationCreate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    owner = user
    if body.user_id is not None and body.user_id != user.id:
        if not user.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        owner = await _load_user(session, body.user_id)

    application = await app_service.create_application(
        session,
        user=owner,
        actor=user,
        submission_method=body.submission_method,
        medical_provider_name=body.medical_provider_name,
        medical_provider_email=body.medical_provider_email,
    )
    await session.commit()
    return ApplicationResponse.model_validate(application)


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    application = await load_application(session, application_id, user)
    return ApplicationResponse.model_validate(application)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@router.post("/batch-status", response_model=BatchStatusResponse, dependencies=[_ADMIN])
async def batch_update_status(
    body: BatchStatusRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> BatchStatusResponse:
    updated = await app_service.batch_update_status(
        session, body.application_ids, body.status, actor=user,
    )
    await session.commit()
    return BatchStatusResponse(status=body.status, updated=updated)


@router.patch("/{application_id}/status", response_model=ApplicationResponse, dependencies=[_ADMIN])
async def update_status(
    application_id: int,
    body: StatusUpdateRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    application = await load_application(session, application_id, user)
    await app_service.update_status(session, application, body.status, actor=user, notes=body.notes)
    await session.commit()
    return ApplicationResponse.model_validate(application)


@router.post(
    "/{application_id}/submit",
    response_model=ApplicationResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN, UserRole.CONSTITUENT))],
)
async def submit_application(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    """Move a draft into review."""
    application = await load_application(session, application_id, user)
    await app_service.update_status(session, application, ApplicationStatus.IN_PROGRESS, actor=user)
    await session.commit()
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/approve", response_model=ApplicationResponse, dependencies=[_ADMIN])
async def approve_application(
    application_id: int,
    user: CurrentUser,
    body: TransitionRequest | None = None,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    application = await load_application(session, application_id, user)
    await app_service.approve(session, application, actor=user, notes=body.notes if body else None)
    await session.commit()
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/reject", response_model=ApplicationResponse, dependencies=[_ADMIN])
async def reject_application(
    application_id: int,
    user: CurrentUser,
    body: TransitionRequest | None = None,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    application = await load_application(session, application_id, user)
    await app_service.reject(session, application, actor=user, notes=body.notes if body else None)
    await session.commit()
    return ApplicationResponse.model_validate(application)


@router.post(
    "/{application_id}/request-documents",
    response_model=ApplicationResponse,
    dependencies=[_ADMIN],
)
async def request_documents(
    application_id: int,
    user: CurrentUser,
    body: TransitionRequest | None = None,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    application = await load_application(session, application_id, user)
    await app_service.request_documents(
        session, application, actor=user, notes=body.notes if body else None,
    )
    await session.commit()
    return ApplicationResponse.model_validate(application)


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


def _not_assigned(what: str, application_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Could not assign {what} to application {application_id}",
    )


@router.post("/{application_id}/voucher", response_model=VoucherResponse, status_code=201, dependencies=[_ADMIN])
async def assign_voucher(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> VoucherResponse:
    voucher = await assignment.assign_voucher(session, application_id, actor=user)
    if voucher is None:
        raise _not_assigned("a voucher", application_id)
    return VoucherResponse.model_validate(voucher)


@router.post(
    "/{application_id}/evaluator",
    response_model=AssignmentResponse,
    status_code=201,
    dependencies=[_ADMIN],
)
async def assign_evaluator(
    application_id: int,
    body: AssignmentRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> AssignmentResponse:
    evaluator = await _load_user(session, body.user_id)
    evaluation = await assignment.assign_evaluator(session, application_id, evaluator, actor=user)
    if evaluation is None:
        raise _not_assigned("an evaluator", application_id)
    return AssignmentResponse(
        id=evaluation.id,
        application_id=application_id,
        assignee_id=evaluation.evaluator_id,
        status=evaluation.status,
    )


@router.post(
    "/{application_id}/trainer",
    response_model=AssignmentResponse,
    status_code=201,
    dependencies=[_ADMIN],
)
async def assign_trainer(
    application_id: int,
    body: AssignmentRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> AssignmentResponse:
    trainer = await _load_user(session, body.user_id)
    training_session = await assignment.assign_trainer(session, application_id, trainer, actor=user)
    if training_session is None:
        raise _not_assigned("a trainer", application_id)
    return AssignmentResponse(
        id=training_session.id,
        application_id=application_id,
        assignee_id=training_session.trainer_id,
        status=training_session.status,
    )


# ---------------------------------------------------------------------------
# Medical certification
# ---------------------------------------------------------------------------


@router.post(
    "/{application_id}/certification/request",
    response_model=ApplicationResponse,
    dependencies=[_ADMIN],
)
async def request_certification(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    application = await load_application(session, application_id, user)
    await certification.request_certification(session, application, actor=user)
    await session.commit()
    return ApplicationResponse.model_validate(application)


@router.put("/{application_id}/certification", response_model=ApplicationResponse, dependencies=[_ADMIN])
async def update_certification(
    application_id: int,
    user: CurrentUser,
    status_value: MedicalCertificationStatus = Form(alias="status"),
    rejection_reason: str | None = Form(default=None),
    submission_method: ProofSubmissionMethod = Form(default=ProofSubmissionMethod.WEB),
    file: UploadFile | None = File(default=None),
    session: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    upload = None
    if file is not None:
        upload = UploadedFile(
            filename=file.filename or "certification",
            content_type=file.content_type or "application/octet-stream",
            data=await file.read(),
        )
    application = await certification.update_certification(
        session,
        application_id,
        status_value,
        actor=user,
        file=upload,
        rejection_reason=rejection_reason,
        submission_method=submission_method,
    )
    return ApplicationResponse.model_validate(application)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


@router.get("/{application_id}/audit-log", response_model=AuditLogResponse, dependencies=[_ADMIN])
async def get_audit_log(
    application_id: int,
    user: CurrentUser,
    deduplicate: bool = Query(default=True),
    session: AsyncSession = Depends(get_db),
) -> AuditLogResponse:
    application = await load_application(session, application_id, user)
    builder = AuditLogBuilder(session, application)
    if deduplicate:
        entries = await builder.build_deduplicated_audit_logs()
    else:
        entries = await builder.build_audit_logs()
    return AuditLogResponse(
        application_id=application_id,
        count=len(entries),
        entries=entries,
        errors=builder.errors,
    )


@router.get(
    "/{application_id}/certification-history",
    response_model=CertificationHistoryResponse,
    dependencies=[_ADMIN],
)
async def get_certification_history(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> CertificationHistoryResponse:
    application = await load_application(session, application_id, user)
    entries = await AuditLogBuilder(session, application).build_deduplicated_audit_logs()
    events = filter_certification_entries(entries)
    return CertificationHistoryResponse(
        application_id=application_id,
        events=events,
        requests=summarize_request_events(events),
    )
