"""
Pydantic schemas for proposal endpoints.

WHAT: Request/response schemas for proposal creation, edits and client
responses.

WHY: Schemas define the API contract for proposal operations:
1. Bound request sizes and basic types
2. Document the API for OpenAPI/Swagger
3. Tell the UI which actions the caller may take

HOW: Content rules (allowed advance percentages, deliverable weeks,
required feedback) are enforced by the proposal state module so every
error comes back as a {field, message} list. The schemas here stay
permissive and only shape the data.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import ConfigDict, Field

from client_portal.models.proposal import Currency, ProposalStatus
from client_portal.schemas.common import CamelModel


class DeliverableIn(CamelModel):
    """
    Deliverable as submitted by staff.

    WHY: Existing ids are echoed back on edit so projects created later
    can keep referencing the same deliverable.
    """

    id: Optional[str] = Field(default=None, max_length=64)
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    estimated_completion_week: Optional[int] = None


class Deliverable(CamelModel):
    id: str
    name: str
    description: str
    estimated_completion_week: int


class ProposalCreate(CamelModel):
    """
    Proposal creation request schema.

    Amounts are integer minor units (paise or cents). Advance and balance
    amounts are computed by the server and cannot be supplied.
    """

    inquiry_id: int = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=10000)
    deliverables: List[DeliverableIn] = Field(default_factory=list)
    currency: Currency = Currency.INR
    total_price: Optional[int] = Field(default=None, description="Minor units")
    advance_percentage: Optional[int] = Field(default=50, description="40, 50 or 60")
    revisions_included: Optional[int] = 2

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "inquiryId": 12,
                "description": "90 second explainer video",
                "deliverables": [
                    {
                        "name": "Script",
                        "description": "Draft and two revisions",
                        "estimatedCompletionWeek": 1,
                    }
                ],
                "currency": "INR",
                "totalPrice": 5000000,
                "advancePercentage": 50,
                "revisionsIncluded": 2,
            }
        }
    )


class ProposalUpdate(CamelModel):
    """
    Normal edit, allowed while the proposal is `changes_requested`.

    Only the fields sent are changed.
    """

    description: Optional[str] = Field(default=None, max_length=10000)
    deliverables: Optional[List[DeliverableIn]] = None
    currency: Optional[Currency] = None
    total_price: Optional[int] = None
    advance_percentage: Optional[int] = None
    revisions_included: Optional[int] = None
    expected_lock_version: Optional[int] = Field(
        default=None, description="lockVersion the edit was based on"
    )

    def changes(self) -> dict:
        """Edited fields only, in storage form."""
        return self.model_dump(exclude_unset=True, exclude={"expected_lock_version"})


class ProposalForceEdit(ProposalUpdate):
    """Super admin edit that bypasses the edit lock."""

    justification: str = Field(..., max_length=2000)

    def changes(self) -> dict:
        return self.model_dump(
            exclude_unset=True, exclude={"expected_lock_version", "justification"}
        )


class ProposalRespond(CamelModel):
    """Client response. Feedback is required to reject or request changes."""

    feedback: Optional[str] = Field(default=None, max_length=5000)
    expected_lock_version: Optional[int] = None


class ProposalResend(CamelModel):
    expected_lock_version: Optional[int] = None


class ProposalPermissions(CamelModel):
    """Actions the caller may take on this proposal right now."""

    can_edit: bool = False
    can_force_edit: bool = False
    can_resend: bool = False
    can_accept: bool = False
    can_reject: bool = False
    can_request_changes: bool = False
    can_comment: bool = False


class EditHistoryEntry(CamelModel):
    at: str
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    previous_status: Optional[str] = None
    forced: bool = False
    reason: Optional[str] = None
    fields: List[str] = Field(default_factory=list)


class ProposalResponse(CamelModel):
    id: int
    inquiry_id: int
    status: ProposalStatus
    version: int

    description: str
    deliverables: List[Deliverable]

    currency: Currency
    total_price: int
    advance_percentage: int
    advance_amount: int
    balance_amount: int
    revisions_included: int

    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    feedback: Optional[str] = None

    edit_history: List[EditHistoryEntry] = Field(default_factory=list)
    created_by_user_id: Optional[int] = None
    lock_version: int

    created_at: datetime
    updated_at: datetime

    inquiry_number: Optional[str] = None
    permissions: Optional[ProposalPermissions] = None


class ProposalListResponse(CamelModel):
    items: List[ProposalResponse]
    total: int
