"""Error types raised by the compliance engine."""

from typing import Optional


class ComplianceError(Exception):
    """Base error for the compliance engine."""


class ValidationError(ComplianceError):
    """Input rejected before any mutation was applied."""


class NotFoundError(ComplianceError):
    """A vehicle or alert id does not exist."""

    def __init__(self, entity_type: str, entity_id: Optional[str]):
        super().__init__(f"{entity_type} '{entity_id}' not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class StoreUnavailable(ComplianceError):
    """Persistence timed out or failed, after any retries."""


class AuditWriteFailure(ComplianceError):
    """An audit entry could not be appended. Recorded, never raised to callers."""

    def __init__(self, message: str, payload: Optional[dict] = None):
        super().__init__(message)
        self.payload = payload or {}
