"""Identity verification workflow: document review and provider sessions."""

import logging
import re
import time
from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from app.api.deps import AdminUser, CurrentUser, DbSession
from app.core.config import settings
from app.models.profile import Profile, UserRole, VerificationStatus
from app.models.verification import (
    DocumentType,
    IdentityStatus,
    IdentityVerification,
    VerificationDocument,
)
from app.schemas.verification import (
    DocumentResponse,
    DocumentReview,
    IdentitySessionResponse,
    IdentityStart,
)
from app.services.identity_provider import (
    IdentityProviderError,
    apply_session_result,
    get_identity_client,
)
from app.services.object_storage import ObjectStorageError, get_object_storage_client

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_DOCUMENT_BYTES = 20 * 1024 * 1024
_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str | None) -> str:
    cleaned = _UNSAFE_FILENAME.sub("_", (name or "").strip()).strip("._")
    return cleaned or "upload"


def _document_response(document: VerificationDocument) -> DocumentResponse:
    response = DocumentResponse.model_validate(document)
    if document.observer is not None:
        response.observer_name = document.observer.name
        response.observer_email = document.observer.email
        response.observer_status = document.observer.verification_status
    return response


@router.post("/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    db: DbSession,
    user: CurrentUser,
    document_type: str = Form(...),
    file: UploadFile = File(...),
) -> DocumentResponse:
    """Upload an identity document for admin review."""
    if document_type not in {d.value for d in DocumentType}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported document type: {document_type}",
        )
    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(data) > MAX_DOCUMENT_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Document too large",
        )

    key = f"{user.id}/{int(time.time() * 1000)}_{safe_filename(file.filename)}"
    try:
        await get_object_storage_client().put_object(
            settings.verification_bucket,
            key,
            data,
            content_type=file.content_type or "application/octet-stream",
        )
    except ObjectStorageError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not store document",
        ) from e

    document = VerificationDocument(observer_id=user.id, document_type=document_type, storage_key=key)
    db.add(document)
    await db.flush()
    await db.refresh(document, attribute_names=["observer"])
    logger.info(f"User {user.id} uploaded {document_type} document {document.id}")
    return _document_response(document)


@router.get("/documents", response_model=list[DocumentResponse])
async def list_documents(
    db: DbSession,
    admin: AdminUser,
    search: str | None = Query(None, max_length=255),
    observer_status: str | None = Query(None, alias="status"),
) -> list[DocumentResponse]:
    query = (
        select(VerificationDocument)
        .join(Profile, VerificationDocument.observer_id == Profile.id)
        .options(selectinload(VerificationDocument.observer))
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                Profile.name.ilike(pattern),
                Profile.email.ilike(pattern),
                VerificationDocument.document_type.ilike(pattern),
            )
        )
    if observer_status:
        query = query.where(Profile.verification_status == observer_status)
    result = await db.execute(query.order_by(VerificationDocument.created_at.desc()))
    return [_document_response(d) for d in result.scalars().all()]


@router.post("/documents/{document_id}/review", response_model=DocumentResponse)
async def review_document(
    document_id: UUID,
    review: DocumentReview,
    db: DbSession,
    admin: AdminUser,
) -> DocumentResponse:
    """Approve or reject a document; the observer's status follows."""
    result = await db.execute(
        select(VerificationDocument)
        .options(selectinload(VerificationDocument.observer))
        .where(VerificationDocument.id == document_id)
    )
    document = result.scalar_one_or_none()
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found",
        )

    document.verified_by = admin.id
    document.verified_at = datetime.now(UTC)
    document.verification_notes = review.notes
    document.observer.verification_status = (
        VerificationStatus.VERIFIED.value if review.approved else VerificationStatus.REJECTED.value
    )
    await db.flush()
    logger.info(
        f"Admin {admin.id} {'approved' if review.approved else 'rejected'} document {document_id}"
    )
    return _document_response(document)


async def _get_session_or_404(db: DbSession, user: Profile, session_id: str) -> IdentityVerification:
    query = select(IdentityVerification).where(IdentityVerification.session_id == session_id)
    if user.role != UserRole.ADMIN.value:
        query = query.where(IdentityVerification.user_id == user.id)
    result = await db.execute(query)
    record = result.scalar_one_or_none()
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Verification session not found",
        )
    return record


@router.post("/identity", response_model=IdentitySessionResponse, status_code=status.HTTP_201_CREATED)
async def start_identity_session(
    request: IdentityStart,
    db: DbSession,
    user: CurrentUser,
) -> IdentitySessionResponse:
    client = get_identity_client()
    callback_url = f"{settings.public_base_url}{settings.api_v1_prefix}/webhooks/identity"
    try:
        session = await client.create_session(
            str(user.id),
            callback_url,
            email=user.email,
            name=user.name,
            verification_method=request.verification_method,
            document_type=request.document_type,
        )
    except IdentityProviderError as e:
        logger.error(f"Identity session start failed for {user.id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Identity provider unavailable",
        ) from e

    record = IdentityVerification(
        user_id=user.id,
        session_id=session["session_id"],
        session_url=session.get("url"),
        status=IdentityStatus.PENDING.value,
        verification_method=request.verification_method,
        expires_at=datetime.now(UTC) + timedelta(minutes=settings.didit_session_ttl_minutes),
    )
    db.add(record)
    user.identity_status = IdentityStatus.PENDING.value
    await db.flush()
    return IdentitySessionResponse.model_validate(record)


@router.get("/identity/{session_id}", response_model=IdentitySessionResponse)
async def get_identity_session(session_id: str, db: DbSession, user: CurrentUser) -> IdentitySessionResponse:
    """Current session state, refreshed from the provider while pending."""
    record = await _get_session_or_404(db, user, session_id)
    if record.status == IdentityStatus.PENDING.value:
        client = get_identity_client()
        if client.configured:
            try:
                payload = await client.get_session(session_id)
            except IdentityProviderError as e:
                # Stored state is still a valid answer
                logger.warning(f"Polling identity session {session_id} failed: {e.message}")
            else:
                owner = user if record.user_id == user.id else await db.get(Profile, record.user_id)
                if apply_session_result(record, owner, payload):
                    await db.flush()
    return IdentitySessionResponse.model_validate(record)


@router.post("/identity/{session_id}/cancel", response_model=IdentitySessionResponse)
async def cancel_identity_session(session_id: str, db: DbSession, user: CurrentUser) -> IdentitySessionResponse:
    record = await _get_session_or_404(db, user, session_id)
    if record.status != IdentityStatus.PENDING.value:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session is already {record.status}",
        )
    record.status = IdentityStatus.CANCELLED.value
    await db.flush()
    return IdentitySessionResponse.model_validate(record)
