"""
Pydantic schemas for inquiry endpoints.

WHAT: Request/response schemas for inquiry submission and management.

WHY: The public submission form is unauthenticated, so its schema only
bounds sizes. Format rules (email, phone) are enforced by InquiryService
so direct callers get the same {field, message} errors.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, ConfigDict, EmailStr, Field

from client_portal.models.inquiry import InquiryStatus
from client_portal.schemas.common import CamelModel
from client_portal.services.inquiry_state import InquiryEvent


class InquiryCreate(CamelModel):
    """
    Public inquiry submission.

    The quiz's video type may be sent as `videoType` or
    `recommendedVideoType`.
    """

    contact_name: str = Field(..., max_length=255)
    contact_email: EmailStr
    company_name: Optional[str] = Field(default=None, max_length=255)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    project_notes: Optional[str] = Field(default=None, max_length=5000)

    niche: Optional[str] = Field(default=None, max_length=255)
    audience: Optional[str] = Field(default=None, max_length=255)
    style: Optional[str] = Field(default=None, max_length=255)
    mood: Optional[str] = Field(default=None, max_length=255)
    duration: Optional[str] = Field(default=None, max_length=100)
    recommended_video_type: Optional[str] = Field(
        default=None,
        max_length=255,
        validation_alias=AliasChoices(
            "recommendedVideoType", "videoType", "recommended_video_type"
        ),
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "contactName": "Priya Sharma",
                "contactEmail": "priya@example.com",
                "companyName": "Acme Analytics",
                "videoType": "Explainer Video",
                "niche": "Technology",
                "projectNotes": "Need a 90s explainer",
            }
        }
    )


class InquiryContactUpdate(CamelModel):
    """Contact snapshot edit, allowed while the inquiry is new."""

    contact_name: Optional[str] = Field(default=None, max_length=255)
    contact_email: Optional[EmailStr] = None
    company_name: Optional[str] = Field(default=None, max_length=255)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    project_notes: Optional[str] = Field(default=None, max_length=5000)


class InquiryStatusAction(CamelModel):
    """Pipeline action triggered by staff."""

    event: InquiryEvent


class InquiryResponse(CamelModel):
    id: int
    inquiry_number: str
    status: InquiryStatus

    contact_name: str
    contact_email: str
    company_name: Optional[str] = None
    contact_phone: Optional[str] = None
    project_notes: Optional[str] = None

    niche: Optional[str] = None
    audience: Optional[str] = None
    style: Optional[str] = None
    mood: Optional[str] = None
    duration: Optional[str] = None
    recommended_video_type: Optional[str] = None

    client_user_id: Optional[int] = None
    assigned_to_admin_id: Optional[int] = None
    proposal_id: Optional[int] = None
    converted_to_project_id: Optional[int] = None
    converted_at: Optional[datetime] = None

    created_at: datetime
    updated_at: datetime

    allowed_events: List[str] = Field(
        default_factory=list, description="Pipeline actions the caller can trigger"
    )


class InquiryListResponse(CamelModel):
    items: List[InquiryResponse]
    total: int
    skip: int
    limit: int
