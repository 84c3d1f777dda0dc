"""
Authorization gate: role and base scoping for every ledger operation.

``authorize`` answers allow/deny with a machine-readable reason; ``require``
raises ``ForbiddenError`` on deny. Workflows call ``require`` before any
write.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from errors import ForbiddenError

logger = logging.getLogger("ledger.authz")

ADMIN = "admin"
BASE_COMMANDER = "base_commander"
LOGISTICS_OFFICER = "logistics_officer"
USER = "user"

ROLES = {ADMIN, BASE_COMMANDER, LOGISTICS_OFFICER, USER}
UNRESTRICTED_ROLES = {ADMIN, LOGISTICS_OFFICER}

# operations
READ = "read"
CATALOG_WRITE = "catalog.write"
PURCHASE_CREATE = "purchase.create"
PURCHASE_UPDATE = "purchase.update"
PURCHASE_DELIVER = "purchase.deliver"
PURCHASE_CANCEL = "purchase.cancel"
TRANSFER_INITIATE = "transfer.initiate"
TRANSFER_UPDATE = "transfer.update"
TRANSFER_APPROVE = "transfer.approve"
TRANSFER_COMPLETE = "transfer.complete"
TRANSFER_CANCEL = "transfer.cancel"
ASSIGNMENT_CREATE = "assignment.create"
ASSIGNMENT_UPDATE = "assignment.update"
ASSIGNMENT_RETURN = "assignment.return"
ASSIGNMENT_LOSS = "assignment.loss"
EXPENDITURE_CREATE = "expenditure.create"
EXPENDITURE_UPDATE = "expenditure.update"
EXPENDITURE_APPROVE = "expenditure.approve"
EXPENDITURE_COMPLETE = "expenditure.complete"
EXPENDITURE_CANCEL = "expenditure.cancel"

ADMIN_ONLY = {CATALOG_WRITE}
CENTRAL_ONLY = {TRANSFER_APPROVE}
EITHER_END = {TRANSFER_INITIATE, TRANSFER_UPDATE, TRANSFER_CANCEL}
DESTINATION_ONLY = {TRANSFER_COMPLETE}


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str
    assigned_base: Optional[str] = None
    active: bool = True


@dataclass(frozen=True)
class Resource:
    """Bases touched by an operation. Transfers set source/dest, everything else sets base_id."""

    base_id: Optional[str] = None
    source_base_id: Optional[str] = None
    dest_base_id: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def _deny(reason: str) -> Decision:
    return Decision(False, reason)


def authorize(actor: Actor, operation: str, resource: Resource | None = None) -> Decision:
    resource = resource or Resource()

    if not actor.active or actor.role not in ROLES:
        return _deny(ForbiddenError.ROLE_INSUFFICIENT)

    if operation in ADMIN_ONLY:
        return ALLOW if actor.role == ADMIN else _deny(ForbiddenError.ROLE_INSUFFICIENT)

    if actor.role in UNRESTRICTED_ROLES:
        return ALLOW

    if actor.role == USER:
        return ALLOW if operation == READ else _deny(ForbiddenError.ROLE_INSUFFICIENT)

    # base_commander from here on
    if operation in CENTRAL_ONLY:
        return _deny(ForbiddenError.ROLE_INSUFFICIENT)

    own = actor.assigned_base
    if not own:
        return _deny(ForbiddenError.BASE_MISMATCH)

    if operation in DESTINATION_ONLY:
        return ALLOW if resource.dest_base_id == own else _deny(ForbiddenError.BASE_MISMATCH)

    if operation in EITHER_END or (operation == READ and resource.source_base_id):
        if own in (resource.source_base_id, resource.dest_base_id):
            return ALLOW
        return _deny(ForbiddenError.BASE_MISMATCH)

    if operation == READ and resource.base_id is None:
        # list queries are narrowed by base_scope() instead
        return ALLOW

    return ALLOW if resource.base_id == own else _deny(ForbiddenError.BASE_MISMATCH)


def require(actor: Actor, operation: str, resource: Resource | None = None) -> None:
    decision = authorize(actor, operation, resource)
    if decision:
        return
    logger.warning(
        "denied user=%s role=%s op=%s reason=%s resource=%s",
        actor.user_id,
        actor.role,
        operation,
        decision.reason,
        resource,
    )
    raise ForbiddenError(decision.reason or ForbiddenError.ROLE_INSUFFICIENT, operation=operation)


def effective_base(actor: Actor, requested: Optional[str]) -> Optional[str]:
    """Commanders always act on their own base; a client-supplied base is advisory only."""
    if actor.role == BASE_COMMANDER:
        return actor.assigned_base
    return requested


def base_scope(actor: Actor, requested: Optional[str] = None) -> Optional[str]:
    """Base filter for list queries."""
    if actor.role == BASE_COMMANDER:
        return actor.assigned_base or ""
    return requested
