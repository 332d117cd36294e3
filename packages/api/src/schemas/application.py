# This project was developed with assistance from AI tools.
"""Application request/response schemas."""

from datetime import datetime
from decimal import Decimal

from db.enums import (
    ApplicationStatus,
    ApplicationSubmissionMethod,
    MedicalCertificationStatus,
    ProofStatus,
    SessionStatus,
    VoucherStatus,
)
from pydantic import BaseModel, ConfigDict, Field


class ApplicationCreate(BaseModel):
    """Create a draft application. Admins may open one on a constituent's behalf."""

    user_id: int | None = None
    submission_method: ApplicationSubmissionMethod = ApplicationSubmissionMethod.ONLINE
    medical_provider_name: str | None = Field(default=None, max_length=255)
    medical_provider_email: str | None = Field(default=None, max_length=255)


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    status: ApplicationStatus
    submission_method: ApplicationSubmissionMethod
    income_proof_status: ProofStatus
    residency_proof_status: ProofStatus
    medical_certification_status: MedicalCertificationStatus
    medical_certification_request_count: int = 0
    total_rejections: int = 0
    needs_review_since: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StatusUpdateRequest(BaseModel):
    status: ApplicationStatus
    notes: str | None = None


class TransitionRequest(BaseModel):
    """Body for approve / reject / request-documents."""

    notes: str | None = None


class BatchStatusRequest(BaseModel):
    application_ids: list[int] = Field(min_length=1)
    status: ApplicationStatus


class BatchStatusResponse(BaseModel):
    status: ApplicationStatus
    updated: int


class AssignmentRequest(BaseModel):
    user_id: int


class VoucherResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    application_id: int
    code: str
    status: VoucherStatus
    initial_value: Decimal
    remaining_value: Decimal
    issued_at: datetime
    expires_at: datetime | None = None


class AssignmentResponse(BaseModel):
    """Evaluation or training session created by an assignment."""

    id: int
    application_id: int
    assignee_id: int
    status: SessionStatus
