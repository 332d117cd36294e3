# This project was developed with assistance from AI tools.
"""Blob bookkeeping on top of the object store.

A proof can arrive as a raw upload, as an already-stored ``Blob`` row, or
as a signed reference token handed out by the direct-upload endpoint. All
three resolve to a single ``Blob`` before the attachment engine touches the
application.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import timedelta

import jwt
from db import Blob
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import ValidationError
from ..core.timeutil import utcnow
from .proof_validation import validate_file_content, validate_file_metadata
from .storage import StorageService

logger = logging.getLogger(__name__)

_SIGNED_BLOB_PURPOSE = "blob_id"


@dataclass(frozen=True)
class UploadedFile:
    """Raw upload as received from a form, scanner or inbound email."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


ProofFile = UploadedFile | Blob | str


# ---------------------------------------------------------------------------
# Signed references
# ---------------------------------------------------------------------------


def sign_blob_id(blob_id: int, expires_in: int | None = None) -> str:
    """Return a signed, expiring reference to a stored blob."""
    ttl = expires_in if expires_in is not None else settings.SIGNED_BLOB_TTL_SECONDS
    payload = {
        "blob_id": blob_id,
        "purpose": _SIGNED_BLOB_PURPOSE,
        "exp": utcnow() + timedelta(seconds=ttl),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_signed_blob_id(token: str) -> int:
    """Decode a signed reference, raising ValidationError if it is not trustworthy."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise ValidationError("Signed blob reference has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise ValidationError("Invalid signed blob reference") from exc

    if payload.get("purpose") != _SIGNED_BLOB_PURPOSE or "blob_id" not in payload:
        raise ValidationError("Invalid signed blob reference")
    return int(payload["blob_id"])


# ---------------------------------------------------------------------------
# Create / resolve / purge
# ---------------------------------------------------------------------------


async def create_blob(
    session: AsyncSession,
    storage: StorageService,
    upload: UploadedFile,
    *,
    application_id: int,
    attachment_name: str,
) -> Blob:
    """Validate, store and register an upload. Raises StorageError on write failure."""
    validate_file_metadata(upload.filename, upload.content_type, upload.size)
    validate_file_content(upload.data, upload.content_type)

    object_key = storage.build_object_key(application_id, attachment_name, upload.filename)
    await storage.upload_file(upload.data, object_key, upload.content_type)

    blob = Blob(
        key=object_key,
        filename=upload.filename,
        content_type=upload.content_type,
        byte_size=upload.size,
        checksum=hashlib.sha256(upload.data).hexdigest(),
    )
    session.add(blob)
    await session.flush()
    return blob


async def resolve_blob(
    session: AsyncSession,
    storage: StorageService,
    file: ProofFile,
    *,
    application_id: int,
    attachment_name: str,
) -> Blob:
    """Turn any accepted file representation into a persisted Blob."""
    if isinstance(file, Blob):
        blob = file
    elif isinstance(file, str):
        blob = await session.get(Blob, verify_signed_blob_id(file))
        if blob is None:
            raise ValidationError("Signed blob reference points to a missing blob")
    elif isinstance(file, UploadedFile):
        return await create_blob(
            session,
            storage,
            file,
            application_id=application_id,
            attachment_name=attachment_name,
        )
    else:
        raise ValidationError(f"Unsupported file representation: {type(file).__name__}")

    validate_file_metadata(blob.filename, blob.content_type, blob.byte_size)
    return blob


async def purge_blob(session: AsyncSession, storage: StorageService, blob: Blob) -> None:
    """Remove the stored object and its metadata row."""
    await storage.delete_file(blob.key)
    await session.delete(blob)
    logger.info("Purged blob %s (%s)", blob.id, blob.key)
