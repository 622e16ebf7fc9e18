"""
ComplianceService - the engine entry point for every read and mutation.

Each mutation of a vehicle (edit, document upload, delete) and the alert
synchronization that follows it run as one unit under that vehicle's lock,
so a status read through the service never sees new documents with stale
alerts. The service keeps no data of its own; the store is the only state.
"""

import random
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TextIO, Tuple, Union

from dateutil.relativedelta import relativedelta

from .alert import Alert
from .audit import AuditAction, AuditFilter, AuditLogEntry, AuditRecorder, EntityType
from .config import Settings
from .dates import format_iso_date, timestamp, utc_now
from .document import Document, DocumentKind, Suggestion
from .errors import ComplianceError, NotFoundError, ValidationError
from .logger import get_logger
from .obligation_status import ObligationStatus
from .retry import RetryingStore, RetryPolicy
from .status import DocumentStatus, VehicleStatus
from .store import Store, YamlStore
from .summary import ReportRow, Summary, expiring_documents, summarize, write_report_csv
from .synchronizer import FleetSyncResult, synchronize, synchronize_fleet
from .validation import validate_document_input, validate_vehicle_input, validate_vehicle_update
from .vehicle import Vehicle, normalize_registration

logger = get_logger(__name__)

# Vehicle attribute -> input field name
VEHICLE_FIELDS = {
    "registration_number": "registrationNumber",
    "make": "make",
    "model": "model",
    "vehicle_type": "vehicleType",
}

REPORT_NAME = "expiring-documents"

SuggestionInput = Union[Suggestion, Tuple[Optional[str], float], Dict[str, Any]]


def parse_kind(kind: Union[DocumentKind, str]) -> Union[DocumentKind, str]:
    """Resolve a kind name case-insensitively; unknown names pass through to validation."""
    if isinstance(kind, DocumentKind):
        return kind
    for candidate in DocumentKind:
        if str(kind).strip().lower() in (candidate.value.lower(), candidate.name.lower()):
            return candidate
    return kind


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _suggestions_input(suggestions: Optional[Dict[str, SuggestionInput]]) -> Dict[str, Dict[str, Any]]:
    """Normalise extraction suggestions to {field: {"value", "confidence"}}."""
    if suggestions is None:
        return {}
    if not isinstance(suggestions, dict):
        raise ValidationError("suggestions must map field names to (value, confidence)")
    result = {}
    for field, suggestion in suggestions.items():
        if isinstance(suggestion, dict):
            result[field] = dict(suggestion)
        elif isinstance(suggestion, (tuple, list)) and len(suggestion) == 2:
            value, confidence = suggestion
            result[field] = {"value": value, "confidence": confidence}
        else:
            raise ValidationError(f"suggestions.{field}: expected (value, confidence)")
    return result


class ComplianceService:
    """Compliance engine operating on an injected store."""

    def __init__(
        self,
        store: Store,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], date]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock or date.today
        self.now = now or utc_now
        self.audit = AuditRecorder(store, self.now)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._registration_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ComplianceService":
        """Service over a retrying YAML store in ``settings.data_dir``."""
        store = RetryingStore(
            YamlStore(settings.data_dir, timeout=settings.store_timeout),
            RetryPolicy(max_attempts=settings.store_retries, backoff=settings.store_backoff),
        )
        return cls(store, settings)

    @property
    def warning_days(self) -> int:
        return self.settings.warning_days

    @contextmanager
    def vehicle_lock(self, vehicle_id: str) -> Iterator[None]:
        """Serialise every mutation and status read of one vehicle."""
        with self._locks_guard:
            lock = self._locks.setdefault(vehicle_id, threading.Lock())
        with lock:
            yield

    def _require_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = self.store.get_vehicle(vehicle_id)
        if vehicle is None:
            raise NotFoundError("vehicle", vehicle_id)
        return vehicle

    def _check_unique_registration(self, registration_number: str, exclude_id: Optional[str] = None) -> None:
        for other in self.store.list_vehicles():
            if other.registration_number == registration_number and other.id != exclude_id:
                raise ValidationError(f"Registration number {registration_number} already exists")

    def _sync(self, vehicle: Vehicle, user_id: str) -> List[Alert]:
        return synchronize(self.store, vehicle, user_id, self.clock(), self.warning_days, self.now)

    def _sync_after_write(self, vehicle: Vehicle, user_id: str) -> List[Alert]:
        """Resynchronize after a saved and audited mutation, which stays saved if this fails."""
        try:
            return self._sync(vehicle, user_id)
        except ComplianceError as e:
            logger.error(f"[ALERT][SYNC] {vehicle.registration_number} alerts not refreshed after write: {e}")
            raise

    # =========================================================================
    # Vehicles
    # =========================================================================

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        return self.store.get_vehicle(vehicle_id)

    def list_vehicles(self) -> List[Vehicle]:
        return self.store.list_vehicles()

    def find_vehicle(self, ref: str) -> Optional[Vehicle]:
        """Look a vehicle up by id, falling back to registration number."""
        vehicle = self.store.get_vehicle(ref)
        if vehicle is not None:
            return vehicle
        registration = normalize_registration(ref)
        for candidate in self.store.list_vehicles():
            if candidate.registration_number == registration:
                return candidate
        return None

    def create_vehicle(
        self,
        user_id: str,
        registration_number: str,
        make: str,
        model: str,
        vehicle_type: str = "Car",
    ) -> Vehicle:
        validate_vehicle_input({
            "registrationNumber": registration_number,
            "make": make,
            "model": model,
            "vehicleType": vehicle_type,
        })
        created = timestamp(self.now())
        vehicle = Vehicle(
            id=uuid.uuid4().hex,
            registration_number=registration_number,
            make=make.strip(),
            model=model.strip(),
            vehicle_type=vehicle_type.strip(),
            created_at=created,
            updated_at=created,
        )
        with self._registration_lock:
            self._check_unique_registration(vehicle.registration_number)
            self.store.put_vehicle(vehicle)

        self.audit.record(
            user_id,
            AuditAction.CREATE_VEHICLE,
            EntityType.VEHICLE,
            vehicle.id,
            {
                "registrationNumber": vehicle.registration_number,
                "make": vehicle.make,
                "model": vehicle.model,
                "vehicleType": vehicle.vehicle_type,
            },
            vehicle.registration_number,
        )
        logger.info(f"[VEHICLE][CREATED] {vehicle.registration_number} ({vehicle.id})")
        return vehicle

    def update_vehicle(self, user_id: str, vehicle_id: str, **changes: Any) -> Vehicle:
        """
        Edit vehicle attributes (registration_number, make, model, vehicle_type).

        Changed fields are audited as old/new pairs, and the acting user's
        alerts are resynchronized since they carry the registration number.
        """
        unknown = set(changes) - set(VEHICLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown vehicle field(s): {', '.join(sorted(unknown))}")
        updates = {k: v for k, v in changes.items() if v is not None}
        validate_vehicle_update({VEHICLE_FIELDS[k]: v for k, v in updates.items()})

        updates = {k: v.strip() for k, v in updates.items()}
        if "registration_number" in updates:
            updates["registration_number"] = normalize_registration(updates["registration_number"])

        with self.vehicle_lock(vehicle_id), self._registration_lock:
            vehicle = self._require_vehicle(vehicle_id)
            if "registration_number" in updates:
                self._check_unique_registration(updates["registration_number"], exclude_id=vehicle.id)

            changed = {}
            for attr, new in updates.items():
                old = getattr(vehicle, attr)
                if old != new:
                    changed[VEHICLE_FIELDS[attr]] = {"old": old, "new": new}
                    setattr(vehicle, attr, new)

            if changed:
                vehicle.updated_at = timestamp(self.now())
                self.store.put_vehicle(vehicle)
                self.audit.record(
                    user_id,
                    AuditAction.UPDATE_VEHICLE,
                    EntityType.VEHICLE,
                    vehicle.id,
                    {"updates": changed},
                    vehicle.registration_number,
                )
            self._sync_after_write(vehicle, user_id)
        return vehicle

    def delete_vehicle(self, user_id: str, vehicle_id: str) -> bool:
        """Delete a vehicle and every owner's alerts for it. Audit history stays."""
        with self.vehicle_lock(vehicle_id):
            vehicle = self._require_vehicle(vehicle_id)
            alerts = self.store.list_alerts(vehicle_id=vehicle.id)
            # The vehicle goes last so a failed delete can simply be retried
            removed = 0
            try:
                for alert in alerts:
                    self.store.delete_alert(alert.id)
                    removed += 1
            except ComplianceError as e:
                logger.error(
                    f"[VEHICLE][DELETE] {vehicle.registration_number} stopped after {removed}/{len(alerts)} alerts: {e}"
                )
                raise
            self.store.delete_vehicle(vehicle.id)

            self.audit.record(
                user_id,
                AuditAction.DELETE_VEHICLE,
                EntityType.VEHICLE,
                vehicle.id,
                {"registrationNumber": vehicle.registration_number, "deletedAlerts": len(alerts)},
                vehicle.registration_number,
            )
            logger.info(f"[VEHICLE][DELETED] {vehicle.registration_number} ({len(alerts)} alerts removed)")

        with self._locks_guard:
            self._locks.pop(vehicle_id, None)
        return True

    # =========================================================================
    # Documents
    # =========================================================================

    def upload_document(
        self,
        user_id: str,
        vehicle_id: str,
        kind: Union[DocumentKind, str],
        expiry_date: Optional[str] = None,
        custom_type_name: Optional[str] = None,
        reference_number: Optional[str] = None,
        start_date: Optional[str] = None,
        document_name: Optional[str] = None,
        suggestions: Optional[Dict[str, SuggestionInput]] = None,
    ) -> Document:
        """
        Append a document to a vehicle's history and resynchronize alerts.

        ``suggestions`` holds machine-extracted candidates as
        {field: (value, confidence)}. They are stored beside the document for
        comparison only; the confirmed values are the explicit arguments.
        """
        kind = parse_kind(kind)
        data: Dict[str, Any] = {"kind": kind.value if isinstance(kind, DocumentKind) else kind}
        fields = {
            "customTypeName": _blank_to_none(custom_type_name),
            "referenceNumber": _blank_to_none(reference_number),
            "startDate": _blank_to_none(start_date),
            "expiryDate": _blank_to_none(expiry_date),
            "documentName": _blank_to_none(document_name),
        }
        data.update({k: v for k, v in fields.items() if v is not None})
        if suggestions:
            data["suggestions"] = _suggestions_input(suggestions)
        validate_document_input(data)

        with self.vehicle_lock(vehicle_id):
            vehicle = self._require_vehicle(vehicle_id)
            uploaded = timestamp(self.now())
            doc = Document(
                id=uuid.uuid4().hex,
                vehicle_id=vehicle.id,
                kind=kind,
                uploaded_at=uploaded,
                expiry_date=data.get("expiryDate"),
                custom_type_name=data.get("customTypeName"),
                reference_number=data.get("referenceNumber"),
                start_date=data.get("startDate"),
                document_name=data.get("documentName"),
                suggestions={
                    field: Suggestion(s.get("value"), float(s["confidence"]))
                    for field, s in data.get("suggestions", {}).items()
                },
            )
            vehicle.documents.append(doc)
            vehicle.updated_at = uploaded
            self.store.put_vehicle(vehicle)

            details = {k: v for k, v in data.items() if k != "suggestions"}
            details["vehicleId"] = vehicle.id
            if doc.suggestions:
                details["suggestions"] = data["suggestions"]
            self.audit.record(
                user_id,
                AuditAction.UPLOAD_DOCUMENT,
                EntityType.DOCUMENT,
                doc.id,
                details,
                vehicle.registration_number,
            )
            logger.info(f"[DOCUMENT][UPLOADED] {vehicle.registration_number} {doc.label} expires {doc.expiry_date}")
            self._sync_after_write(vehicle, user_id)
        return doc

    # =========================================================================
    # Status and alerts
    # =========================================================================

    def vehicle_status(self, vehicle_id: str) -> Optional[Tuple[VehicleStatus, List[ObligationStatus]]]:
        """Overall status and per-obligation detail, or None for an unknown vehicle."""
        with self.vehicle_lock(vehicle_id):
            vehicle = self.store.get_vehicle(vehicle_id)
        if vehicle is None:
            return None
        today = self.clock()
        return (
            vehicle.overall_status(today, self.warning_days),
            vehicle.get_all_obligation_status(today, self.warning_days),
        )

    def synchronize(self, user_id: str, vehicle_id: str) -> List[Alert]:
        with self.vehicle_lock(vehicle_id):
            return self._sync(self._require_vehicle(vehicle_id), user_id)

    def synchronize_fleet(self, user_id: str) -> FleetSyncResult:
        result = synchronize_fleet(
            self.store,
            user_id,
            self.clock(),
            self.warning_days,
            self.now,
            lock_for=self.vehicle_lock,
        )
        if result.failures:
            logger.error(f"[ALERT][SYNC] {len(result.failures)} vehicle(s) failed: {result.failures}")
        return result

    def list_alerts(self, user_id: str, only_unread: bool = False) -> List[Alert]:
        return self.store.list_alerts(owner_id=user_id, only_unread=only_unread)

    def mark_alert_read(self, user_id: str, alert_id: str) -> bool:
        """Acknowledge one of the user's alerts. Other users' alerts are not found."""
        alert = self.store.get_alert(alert_id)
        if alert is None or alert.owner_id != user_id:
            raise NotFoundError("alert", alert_id)
        with self.vehicle_lock(alert.vehicle_id):
            if not self.store.mark_alert_read(alert.id):
                raise NotFoundError("alert", alert_id)

        self.audit.record(
            user_id,
            AuditAction.MARK_ALERT_READ,
            EntityType.ALERT,
            alert.id,
            {
                "documentKind": alert.kind.value,
                "customTypeName": alert.custom_type_name,
                "dueDate": alert.due_date,
                "vehicleRegistration": alert.vehicle_registration,
            },
            alert.vehicle_registration,
        )
        return True

    # =========================================================================
    # Summary, reports and audit
    # =========================================================================

    def summary(self) -> Summary:
        return summarize(self.store.list_vehicles(), self.clock(), self.warning_days)

    def _record_report(
        self,
        user_id: str,
        action: AuditAction,
        rows: List[ReportRow],
        statuses: Optional[Sequence[DocumentStatus]],
        kinds: Optional[Sequence[DocumentKind]],
        export_format: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {
            "reportName": REPORT_NAME,
            "filtersApplied": {
                "statuses": [s.name for s in statuses or []],
                "kinds": [k.value for k in kinds or []],
            },
            "rowCount": len(rows),
        }
        if export_format:
            details["format"] = export_format
        self.audit.record(user_id, action, EntityType.REPORT, None, details)

    def expiring_report(
        self,
        user_id: str,
        statuses: Optional[Sequence[DocumentStatus]] = None,
        kinds: Optional[Sequence[DocumentKind]] = None,
    ) -> List[ReportRow]:
        """Report rows for every document, audited as a view."""
        rows = expiring_documents(
            self.store.list_vehicles(), statuses, kinds, self.clock(), self.warning_days
        )
        self._record_report(user_id, AuditAction.VIEW_REPORT, rows, statuses, kinds)
        return rows

    def export_expiring_report(
        self,
        user_id: str,
        fp: TextIO,
        statuses: Optional[Sequence[DocumentStatus]] = None,
        kinds: Optional[Sequence[DocumentKind]] = None,
    ) -> List[ReportRow]:
        """Write the report to ``fp`` as CSV. Audited as an export once the rows are written."""
        rows = expiring_documents(
            self.store.list_vehicles(), statuses, kinds, self.clock(), self.warning_days
        )
        write_report_csv(rows, fp)
        self._record_report(user_id, AuditAction.EXPORT_REPORT, rows, statuses, kinds, "csv")
        return rows

    def list_audit_entries(self, audit_filter: Optional[AuditFilter] = None) -> List[AuditLogEntry]:
        return self.store.list_audit_entries(audit_filter)

    def seed_demo_fleet(self, user_id: str, seed: int = 0) -> List[Vehicle]:
        """
        Populate a demo fleet with two years of document history per vehicle.

        Current documents land between a month overdue and three months out,
        so the demo shows every status.
        """
        rng = random.Random(seed)
        today = self.clock()
        demo = [
            ("MH12AB1234", "Car", "Toyota", "Camry"),
            ("KA01CD5678", "Truck", "Volvo", "FH"),
            ("DL03EF9012", "Bus", "Tata", "Marcopolo"),
            ("TN07GH4567", "Van", "Force", "Traveller"),
        ]
        kinds = [DocumentKind.INSURANCE, DocumentKind.FITNESS, DocumentKind.POLLUTION, DocumentKind.PERMIT]

        vehicles = []
        documents = 0
        for index, (registration, vehicle_type, make, model) in enumerate(demo):
            vehicle = self.create_vehicle(user_id, registration, make, model, vehicle_type)
            for years_back in (2, 1, 0):
                for kind in kinds:
                    if kind is DocumentKind.PERMIT and vehicle_type == "Car":
                        continue
                    if years_back:
                        expiry = today - relativedelta(years=years_back) + relativedelta(days=rng.randint(0, 300))
                    else:
                        expiry = today + relativedelta(days=rng.randint(-30, 90))
                    self.upload_document(
                        user_id,
                        vehicle.id,
                        kind,
                        expiry_date=format_iso_date(expiry),
                        reference_number=f"{kind.value[:3].upper()}-{index}{rng.randint(1000, 9999)}",
                        start_date=format_iso_date(expiry - relativedelta(years=1)),
                    )
                    documents += 1
            vehicles.append(self.get_vehicle(vehicle.id) or vehicle)

        self.audit.record(
            user_id,
            AuditAction.SYSTEM_INIT,
            EntityType.SYSTEM,
            None,
            {"message": "Demo fleet initialized", "vehicles": len(vehicles), "documents": documents},
        )
        return vehicles
