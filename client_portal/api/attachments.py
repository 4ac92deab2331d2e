"""
Comment attachment API endpoints.

WHAT: Presigned upload/download of files attached to comments.

WHY: File bytes never pass through the API. The client:
1. Asks /attachments/presign for an upload URL and storage key
2. PUTs the bytes straight to object storage
3. Registers the key on a comment with POST /attachments
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.config import settings
from client_portal.core.deps import get_current_user
from client_portal.core.permissions import Actor
from client_portal.db.session import get_db
from client_portal.schemas.comment import (
    AttachmentCreate,
    AttachmentResponse,
    DownloadUrlResponse,
    PresignRequest,
    PresignResponse,
)
from client_portal.services.comment_service import CommentService
from client_portal.services.storage import StorageService, get_storage


router = APIRouter(prefix="/attachments", tags=["attachments"])


def get_attachment_storage() -> Optional[StorageService]:
    """Storage client, or None when credentials are not configured."""
    if not settings.storage_configured:
        return None
    return get_storage()


def _service(
    db: AsyncSession = Depends(get_db),
    storage: Optional[StorageService] = Depends(get_attachment_storage),
) -> CommentService:
    return CommentService(db, storage=storage)


@router.post("/presign", response_model=PresignResponse, summary="Get an upload URL")
async def presign_upload(
    data: PresignRequest,
    actor: Actor = Depends(get_current_user),
    service: CommentService = Depends(_service),
) -> PresignResponse:
    """
    Issue a presigned PUT URL for a new attachment.

    Raises:
        ValidationError (400): File type, size or name not allowed
        StorageError (502): Storage unavailable or not configured
    """
    grant = await service.authorize_upload(
        data.proposal_id, actor, data.file_name, data.file_type, data.file_size
    )
    return PresignResponse(**grant)


@router.post(
    "",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an uploaded file",
)
async def register_attachment(
    data: AttachmentCreate,
    actor: Actor = Depends(get_current_user),
    service: CommentService = Depends(_service),
) -> AttachmentResponse:
    """
    Attach an uploaded file to a comment.

    Raises:
        ValidationError (400): Key outside the proposal or not uploaded
    """
    attachment = await service.register_attachment(
        data.comment_id, actor, data.file_name, data.file_type, data.file_size, data.storage_key
    )
    return AttachmentResponse.model_validate(attachment)


@router.get("", response_model=List[AttachmentResponse], summary="List a comment's attachments")
async def list_attachments(
    comment_id: int = Query(..., alias="commentId", gt=0),
    actor: Actor = Depends(get_current_user),
    service: CommentService = Depends(_service),
) -> List[AttachmentResponse]:
    attachments = await service.list_attachments(comment_id, actor)
    return [AttachmentResponse.model_validate(a) for a in attachments]


@router.get(
    "/{attachment_id}/download-url",
    response_model=DownloadUrlResponse,
    summary="Get a download URL",
)
async def get_download_url(
    attachment_id: int,
    actor: Actor = Depends(get_current_user),
    service: CommentService = Depends(_service),
) -> DownloadUrlResponse:
    url = await service.get_download_url(attachment_id, actor)
    return DownloadUrlResponse(url=url)
