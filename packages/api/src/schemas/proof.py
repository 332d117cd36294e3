# This project was developed with assistance from AI tools.
"""Proof and certification request/response schemas."""

from datetime import datetime

from db.enums import ProofStatus, ProofSubmissionMethod, ProofType
from pydantic import BaseModel, ConfigDict

from ..services.proof_attachment import PAPER_REJECTION_NOTES


class AttachmentResponse(BaseModel):
    application_id: int
    proof_type: ProofType
    proof_status: ProofStatus
    success: bool
    duration_ms: int
    blob_size: int | None = None


class ProofReviewRequest(BaseModel):
    status: ProofStatus
    rejection_reason: str | None = None
    notes: str | None = None
    submission_method: ProofSubmissionMethod = ProofSubmissionMethod.WEB


class ProofRejectionRequest(BaseModel):
    """Reject a proof that was never supplied (paper intake)."""

    reason: str = "other"
    notes: str = PAPER_REJECTION_NOTES


class ProofReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    application_id: int
    proof_type: ProofType
    status: ProofStatus
    submission_method: ProofSubmissionMethod
    rejection_reason: str | None = None
    notes: str | None = None
    reviewed_at: datetime


class SignedBlobResponse(BaseModel):
    """A stored upload and the signed reference that lets a later request attach it."""

    blob_id: int
    signed_id: str
    byte_size: int
    content_type: str


class InboundEmailResponse(BaseModel):
    """Outcome of one inbound proof email; bounces are reported, not raised."""

    accepted: bool
    application_id: int | None = None
    proof_type: ProofType | None = None
    attached: int = 0
    bounce_reason: str | None = None
    detail: str | None = None
