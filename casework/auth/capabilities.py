"""Role → capability table.

Every "unless elevated privilege" guard in the workflows goes through
``can(actor, Action.BYPASS_DISTINCTNESS)`` so the bypass rule lives in one
place and can be tested on its own.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional
from uuid import UUID

from casework.auth.models import User, UserRole
from casework.shared.errors import AuthorizationError


class Action(str, Enum):
    SUBMIT_CASE = "submit_case"
    SUGGEST_EDIT = "suggest_edit"
    ADD_EVIDENCE = "add_evidence"
    REVIEW_CASE = "review_case"
    VALIDATE_CASE = "validate_case"
    VERIFY_FIELD = "verify_field"
    REVIEW_SUGGESTION = "review_suggestion"
    PROPOSE_CHANGE = "propose_change"
    REVIEW_PROPOSAL = "review_proposal"
    REQUEST_VERIFICATION = "request_verification"
    WORK_VERIFICATION = "work_verification"
    UNPUBLISH_CASE = "unpublish_case"
    MANAGE_VERIFIERS = "manage_verifiers"
    BYPASS_DISTINCTNESS = "bypass_distinctness"


_EDITOR: FrozenSet[Action] = frozenset({
    Action.SUBMIT_CASE,
    Action.SUGGEST_EDIT,
    Action.ADD_EVIDENCE,
    Action.REQUEST_VERIFICATION,
})

_ANALYST: FrozenSet[Action] = _EDITOR | {
    Action.REVIEW_CASE,
    Action.VALIDATE_CASE,
    Action.VERIFY_FIELD,
    Action.REVIEW_SUGGESTION,
    Action.PROPOSE_CHANGE,
    Action.REVIEW_PROPOSAL,
}

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Action]] = {
    UserRole.VIEWER: frozenset(),
    UserRole.EDITOR: _EDITOR,
    UserRole.ANALYST: _ANALYST,
    UserRole.ADMIN: frozenset(Action),
}


def can(actor: User, action: Action) -> bool:
    if action == Action.WORK_VERIFICATION and actor.is_verifier:
        return True
    role = UserRole(actor.role)
    return action in ROLE_CAPABILITIES.get(role, frozenset())


def is_elevated(actor: User) -> bool:
    return can(actor, Action.BYPASS_DISTINCTNESS)


def ensure_can(actor: User, action: Action) -> None:
    if not can(actor, action):
        raise AuthorizationError(f"Missing capability: {action.value}")


def ensure_distinct(actor: User, other_id: Optional[UUID], message: str) -> None:
    """Reject the actor if they are ``other_id``, unless elevated."""
    if other_id is not None and actor.id == other_id and not is_elevated(actor):
        raise AuthorizationError(message)
