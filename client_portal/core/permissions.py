"""
Permission evaluator.

WHAT: Stateless predicates mapping (actor role, action, ownership,
entity status) to allowed / denied.

WHY: Every API entry point that mutates the lifecycle asks the same
questions. Keeping the answers in one pure module means:
1. Rules are testable without a database or HTTP client
2. Routes cannot drift apart in what they allow
3. The UI can be told exactly which buttons to show

HOW: ROLE_ACTIONS grants actions per role. Client grants are further
narrowed by inquiry ownership. Status-dependent rules (edit lock,
client response window) live in allowed_proposal_actions().

The acting user is always passed in explicitly as an Actor; nothing here
reads request or global state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from client_portal.core.config import settings
from client_portal.core.exceptions import AuthorizationError
from client_portal.models.proposal import ProposalStatus
from client_portal.models.user import STAFF_ROLES, UserRole


class Action(str, Enum):
    """Lifecycle actions subject to authorization."""

    VIEW_INQUIRY = "view_inquiry"
    EDIT_INQUIRY_CONTACT = "edit_inquiry_contact"
    MANAGE_INQUIRY_STATUS = "manage_inquiry_status"
    CREATE_PROPOSAL = "create_proposal"
    VIEW_PROPOSAL = "view_proposal"
    EDIT_PROPOSAL = "edit_proposal"
    FORCE_EDIT_PROPOSAL = "force_edit_proposal"
    RESEND_PROPOSAL = "resend_proposal"
    RESPOND_TO_PROPOSAL = "respond_to_proposal"
    COMMENT = "comment"
    CREATE_PAYMENT_ORDER = "create_payment_order"
    VIEW_PAYMENTS = "view_payments"
    MANAGE_PAYMENTS = "manage_payments"
    VIEW_ALL_PROJECTS = "view_all_projects"
    MANAGE_TEAM = "manage_team"


@dataclass(frozen=True)
class Actor:
    """
    The authenticated caller of a lifecycle operation.

    WHY: Threaded explicitly into services so business rules never depend
    on ambient request state.
    """

    id: int
    role: UserRole
    email: str
    name: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @classmethod
    def from_user(cls, user: Any) -> "Actor":
        return cls(id=user.id, role=UserRole(user.role), email=user.email, name=user.name)


_STAFF_COMMON = frozenset(
    {
        Action.VIEW_INQUIRY,
        Action.VIEW_PROPOSAL,
        Action.COMMENT,
        Action.VIEW_PAYMENTS,
    }
)

ROLE_ACTIONS: Dict[UserRole, FrozenSet[Action]] = {
    UserRole.SUPER_ADMIN: frozenset(
        _STAFF_COMMON
        | {
            Action.EDIT_INQUIRY_CONTACT,
            Action.MANAGE_INQUIRY_STATUS,
            Action.CREATE_PROPOSAL,
            Action.EDIT_PROPOSAL,
            Action.FORCE_EDIT_PROPOSAL,
            Action.RESEND_PROPOSAL,
            Action.MANAGE_PAYMENTS,
            Action.VIEW_ALL_PROJECTS,
            Action.MANAGE_TEAM,
        }
    ),
    UserRole.PROJECT_MANAGER: frozenset(
        _STAFF_COMMON
        | {
            Action.EDIT_PROPOSAL,
            Action.VIEW_ALL_PROJECTS,
            Action.MANAGE_TEAM,
        }
    ),
    UserRole.TEAM_MEMBER: _STAFF_COMMON,
    UserRole.CLIENT: frozenset(
        {
            Action.VIEW_INQUIRY,
            Action.EDIT_INQUIRY_CONTACT,
            Action.VIEW_PROPOSAL,
            Action.RESPOND_TO_PROPOSAL,
            Action.COMMENT,
            Action.CREATE_PAYMENT_ORDER,
            Action.VIEW_PAYMENTS,
        }
    ),
}


def owns_inquiry(actor: Actor, inquiry: Any, strict: Optional[bool] = None) -> bool:
    """
    Check whether a client owns an inquiry.

    Ownership is inquiry.client_user_id. Inquiries without an owner are
    open to any client unless strict ownership is enabled.

    Args:
        actor: Calling user
        inquiry: Object exposing client_user_id
        strict: Override STRICT_INQUIRY_OWNERSHIP

    Returns:
        True if the actor may act as the inquiry's client
    """
    if strict is None:
        strict = settings.STRICT_INQUIRY_OWNERSHIP
    owner_id = getattr(inquiry, "client_user_id", None)
    if owner_id is None:
        return not strict
    return owner_id == actor.id


def can(actor: Optional[Actor], action: Action, inquiry: Any = None) -> bool:
    """
    Evaluate whether an actor may perform an action.

    Args:
        actor: Calling user, None when unauthenticated
        action: Action being attempted
        inquiry: Inquiry the action applies to, for ownership checks

    Returns:
        True if allowed. Never raises, never mutates.
    """
    if actor is None:
        return False
    if action not in ROLE_ACTIONS.get(actor.role, frozenset()):
        return False
    if actor.role == UserRole.CLIENT and inquiry is not None:
        return owns_inquiry(actor, inquiry)
    return True


def require(actor: Optional[Actor], action: Action, inquiry: Any = None) -> None:
    """
    Raise unless the actor may perform the action.

    Raises:
        AuthorizationError: Generic 403, the failing rule is not disclosed
    """
    if not can(actor, action, inquiry):
        raise AuthorizationError(
            action=action.value,
            user_id=actor.id if actor else None,
        )


def allowed_proposal_actions(
    actor: Actor, proposal_status: ProposalStatus, inquiry: Any = None
) -> Dict[str, bool]:
    """
    Resolve which proposal buttons the actor should see.

    WHAT: Combines role grants with the status-dependent edit lock and the
    client response window.

    Args:
        actor: Calling user
        proposal_status: Current proposal status
        inquiry: Owning inquiry, for client ownership

    Returns:
        Dict of action flags, suitable for the proposal response body
    """
    responding = proposal_status == ProposalStatus.SENT
    return {
        "can_edit": proposal_status == ProposalStatus.CHANGES_REQUESTED
        and can(actor, Action.EDIT_PROPOSAL, inquiry),
        "can_force_edit": can(actor, Action.FORCE_EDIT_PROPOSAL, inquiry),
        "can_resend": proposal_status == ProposalStatus.CHANGES_REQUESTED
        and can(actor, Action.RESEND_PROPOSAL, inquiry),
        "can_accept": responding and can(actor, Action.RESPOND_TO_PROPOSAL, inquiry),
        "can_reject": responding and can(actor, Action.RESPOND_TO_PROPOSAL, inquiry),
        "can_request_changes": responding
        and can(actor, Action.RESPOND_TO_PROPOSAL, inquiry),
        "can_comment": can(actor, Action.COMMENT, inquiry),
    }
