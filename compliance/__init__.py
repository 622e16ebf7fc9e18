"""
Fleet document compliance engine.

This package tracks regulatory documents for a fleet of vehicles:
- DocumentStatus / VehicleStatus: Compliance levels (OVERDUE, EXPIRING_SOON, ...)
- Document: One uploaded document, kept as append-only history
- Vehicle: Aggregate selecting governing documents and overall status
- classify: Expiry date to document status
- synchronize: Derive and reconcile alerts from document statuses
- summarize: Fleet dashboard counters
- AuditRecorder: Append-only audit trail
- YamlStore / RetryingStore: Persistence
- ComplianceService: Orchestrates mutations, locking and auditing
"""

from .status import DocumentStatus, VehicleStatus
from .document import Document, DocumentKind, Suggestion, ESSENTIAL_KINDS
from .obligation_status import ObligationStatus
from .vehicle import Vehicle
from .alert import Alert, AlertKey
from .audit import AuditAction, AuditFilter, AuditLogEntry, AuditRecorder, EntityType
from .classifier import WARNING_DAYS, classify
from .errors import (
    AuditWriteFailure,
    ComplianceError,
    NotFoundError,
    StoreUnavailable,
    ValidationError,
)
from .store import Store, YamlStore
from .retry import RetryingStore, RetryPolicy
from .synchronizer import FleetSyncResult, synchronize, synchronize_fleet
from .summary import ComplianceBreakdown, ReportRow, Summary, expiring_documents, summarize, write_report_csv
from .config import Settings, load_settings
from .service import ComplianceService

__all__ = [
    "DocumentStatus",
    "VehicleStatus",
    "Document",
    "DocumentKind",
    "Suggestion",
    "ESSENTIAL_KINDS",
    "ObligationStatus",
    "Vehicle",
    "Alert",
    "AlertKey",
    "AuditAction",
    "AuditFilter",
    "AuditLogEntry",
    "AuditRecorder",
    "EntityType",
    "WARNING_DAYS",
    "classify",
    "AuditWriteFailure",
    "ComplianceError",
    "NotFoundError",
    "StoreUnavailable",
    "ValidationError",
    "Store",
    "YamlStore",
    "RetryingStore",
    "RetryPolicy",
    "FleetSyncResult",
    "synchronize",
    "synchronize_fleet",
    "ComplianceBreakdown",
    "ReportRow",
    "Summary",
    "expiring_documents",
    "summarize",
    "write_report_csv",
    "Settings",
    "load_settings",
    "ComplianceService",
]
