"""Append-only audit trail of every mutation."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from .dates import parse_iso_date, parse_timestamp, timestamp, utc_now
from .errors import AuditWriteFailure
from .logger import get_logger
from .validation import require_date

if TYPE_CHECKING:
    from .store import Store

logger = get_logger(__name__)


class AuditAction(Enum):
    CREATE_VEHICLE = "CREATE_VEHICLE"
    UPDATE_VEHICLE = "UPDATE_VEHICLE"
    DELETE_VEHICLE = "DELETE_VEHICLE"
    UPLOAD_DOCUMENT = "UPLOAD_DOCUMENT"
    UPDATE_DOCUMENT = "UPDATE_DOCUMENT"
    DELETE_DOCUMENT = "DELETE_DOCUMENT"
    MARK_ALERT_READ = "MARK_ALERT_READ"
    VIEW_REPORT = "VIEW_REPORT"
    EXPORT_REPORT = "EXPORT_REPORT"
    SYSTEM_INIT = "SYSTEM_INIT"


class EntityType(Enum):
    VEHICLE = "VEHICLE"
    DOCUMENT = "DOCUMENT"
    ALERT = "ALERT"
    REPORT = "REPORT"
    SYSTEM = "SYSTEM"


class AuditLogEntry:
    """One immutable audit record."""

    def __init__(
            self,
            id: str,
            timestamp: str,
            user_id: str,
            action: AuditAction,
            entity_type: EntityType,
            entity_id: Optional[str] = None,
            entity_registration: Optional[str] = None,
            details: Optional[Dict[str, Any]] = None,
    ):
        self.id = id
        self.timestamp = timestamp
        self.user_id = user_id
        self.action = action
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.entity_registration = entity_registration
        self.details = details or {}

    def __repr__(self):
        return f"<AuditLogEntry {self.id} {self.action.value} {self.entity_type.value}:{self.entity_id}>"


@dataclass
class AuditFilter:
    """Audit query. Date bounds are inclusive ``YYYY-MM-DD`` calendar dates."""

    user_id: Optional[str] = None
    entity_type: Optional[EntityType] = None
    action: Optional[AuditAction] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    def __post_init__(self):
        require_date("dateFrom", self.date_from)
        require_date("dateTo", self.date_to)

    def matches(self, entry: AuditLogEntry) -> bool:
        if self.user_id and entry.user_id != self.user_id:
            return False
        if self.entity_type and entry.entity_type is not self.entity_type:
            return False
        if self.action and entry.action is not self.action:
            return False
        day = parse_timestamp(entry.timestamp).date()
        date_from = parse_iso_date(self.date_from)
        if date_from and day < date_from:
            return False
        date_to = parse_iso_date(self.date_to)
        if date_to and day > date_to:
            return False
        return True


class AuditRecorder:
    """
    Writes audit entries through the store on a best-effort basis.

    A failed write never fails the mutation being audited. The failure is
    logged with the full entry and kept in ``failures`` for reporting.
    """

    def __init__(self, store: "Store", now: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.now = now or utc_now
        self.failures: List[AuditWriteFailure] = []

    def record(
        self,
        user_id: str,
        action: AuditAction,
        entity_type: EntityType,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        registration: Optional[str] = None,
    ) -> Optional[AuditLogEntry]:
        entry = AuditLogEntry(
            id=uuid.uuid4().hex,
            timestamp=timestamp(self.now()),
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_registration=registration,
            details=details,
        )
        try:
            self.store.append_audit_entry(entry)
        except Exception as exc:  # noqa: BLE001 - audit must not fail the mutation
            payload = {
                "action": action.value,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "user_id": user_id,
                "details": entry.details,
            }
            failure = AuditWriteFailure(f"audit write failed: {exc}", payload)
            self.failures.append(failure)
            logger.error(f"[AUDIT][FAILED] {action.value} {entity_type.value}:{entity_id} - {exc} | {payload}")
            return None
        return entry
