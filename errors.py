"""
Typed errors raised by the ledger core.

Every error carries a machine-readable ``code``; callers branch on the type
or the code, never on the message. ``ConflictError`` is the only retryable
class (see ``retry.retry_on_conflict``).
"""

from typing import Any


class LedgerError(Exception):
    code: str = "ledger_error"
    status_code: int = 400

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        body.update(self.details)
        return body


class ForbiddenError(LedgerError):
    code = "forbidden"
    status_code = 403

    ROLE_INSUFFICIENT = "role_insufficient"
    BASE_MISMATCH = "base_mismatch"

    def __init__(self, reason: str, message: str | None = None, **details: Any):
        self.reason = reason
        super().__init__(message or f"operation denied: {reason}", reason=reason, **details)


class InvalidStateTransitionError(LedgerError):
    code = "invalid_state_transition"
    status_code = 409

    def __init__(self, entity: str, entity_id: str, current: str, action: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.action = action
        super().__init__(
            f"{entity} {entity_id} cannot {action} from status {current}",
            entity=entity,
            entity_id=entity_id,
            current_status=current,
            action=action,
        )


class InsufficientQuantityError(LedgerError):
    code = "insufficient_quantity"
    status_code = 409

    def __init__(self, lot_id: str, requested: int, available: int):
        self.lot_id = lot_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"insufficient quantity on lot {lot_id}: available {available}, requested {requested}",
            lot_id=lot_id,
            requested=requested,
            available=available,
        )


class InvalidReferenceError(LedgerError):
    code = "invalid_reference"
    status_code = 404

    def __init__(self, entity: str, entity_id: str | None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}", entity=entity, entity_id=entity_id)


class ConflictError(LedgerError):
    """Concurrent write collision. Safe to retry."""

    code = "conflict"
    status_code = 409
    retryable = True

    def __init__(self, entity: str, entity_id: str | None, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message or f"{entity} {entity_id} was modified by another operation",
            entity=entity,
            entity_id=entity_id,
            retryable=True,
        )


class ValidationError(LedgerError):
    code = "validation_error"
    status_code = 422

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        if field:
            super().__init__(message, field=field)
        else:
            super().__init__(message)
