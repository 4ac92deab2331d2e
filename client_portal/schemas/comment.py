"""
Comment and attachment schemas.

WHAT: Request/response schemas for the proposal discussion thread.

HOW: Content length and attachment type/size rules live in
CommentService; these schemas bound sizes and shape the JSON.
"""

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, Field

from client_portal.schemas.common import CamelModel


class CommentCreate(CamelModel):
    proposal_id: int = Field(..., gt=0)
    content: Optional[str] = Field(default=None, max_length=20000)


class CommentUpdate(CamelModel):
    content: Optional[str] = Field(default=None, max_length=20000)


class CommentResponse(CamelModel):
    id: int
    proposal_id: int
    user_id: Optional[int] = None
    user_name: str
    content: str
    is_edited: bool = False
    created_at: datetime
    updated_at: datetime


class PresignRequest(CamelModel):
    """Ask for an upload URL before sending the file's bytes."""

    proposal_id: int = Field(..., gt=0)
    file_name: Optional[str] = Field(default=None, max_length=1000)
    file_type: Optional[str] = Field(default=None, max_length=100)
    file_size: Optional[int] = None


class PresignResponse(CamelModel):
    upload_url: str
    key: str


class AttachmentCreate(CamelModel):
    """
    Register an uploaded file on a comment.

    WHY: The storage key returned by presign is accepted under its older
    `r2Key` name too.
    """

    comment_id: int = Field(..., gt=0)
    file_name: Optional[str] = Field(default=None, max_length=1000)
    file_type: Optional[str] = Field(default=None, max_length=100)
    file_size: Optional[int] = None
    storage_key: str = Field(
        ...,
        max_length=500,
        validation_alias=AliasChoices("storageKey", "r2Key", "storage_key"),
    )


class AttachmentResponse(CamelModel):
    id: int
    comment_id: int
    file_name: str
    file_type: str
    file_size: int
    storage_key: str
    uploaded_by: Optional[int] = None
    created_at: datetime


class DownloadUrlResponse(CamelModel):
    url: str
