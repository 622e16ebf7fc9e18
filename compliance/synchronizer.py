"""
Alert synchronization.

Alerts are derived data: for one vehicle and one owner they are reconciled
against the current governing documents. Unread alerts that no longer match
a due obligation are removed, missing ones are created, and read alerts are
left alone as the record of an acknowledgment.
"""

import uuid
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, ContextManager, Dict, List, Optional

from .alert import Alert, AlertKey
from .classifier import WARNING_DAYS
from .dates import parse_timestamp, resolve_today, timestamp, utc_now
from .logger import get_logger
from .obligation_status import ObligationStatus
from .status import DocumentStatus
from .store import Store
from .vehicle import Vehicle

logger = get_logger(__name__)


def alert_key_for(vehicle: Vehicle, obligation: ObligationStatus, owner_id: str) -> AlertKey:
    doc = obligation.document
    return AlertKey(
        vehicle.id,
        obligation.kind,
        obligation.custom_type_name,
        doc.expiry_date,
        doc.reference_number,
        owner_id,
    )


def alert_message(vehicle: Vehicle, obligation: ObligationStatus) -> str:
    """e.g. 'Insurance (Ref: POL-1) for MH12AB1234 is expiring on 2025-02-01.'"""
    doc = obligation.document
    if obligation.status == DocumentStatus.OVERDUE:
        when = f"overdue since {doc.expiry_date}"
    else:
        when = f"expiring on {doc.expiry_date}"
    return (
        f"{obligation.label} (Ref: {doc.reference_number or 'N/A'}) "
        f"for {vehicle.registration_number} is {when}."
    )


def due_obligations(
    vehicle: Vehicle, today: Optional[date] = None, warning_days: int = WARNING_DAYS
) -> List[ObligationStatus]:
    """Tracked obligations whose governing document is expiring soon or overdue."""
    return [s for s in vehicle.get_all_obligation_status(today, warning_days) if s.is_due]


def synchronize(
    store: Store,
    vehicle: Vehicle,
    owner_id: str,
    today: Optional[date] = None,
    warning_days: int = WARNING_DAYS,
    now: Optional[Callable[[], datetime]] = None,
) -> List[Alert]:
    """
    Reconcile one owner's alerts for a vehicle and return the unread ones.

    Running it again without document changes creates, deletes and rewrites
    nothing.
    """
    today = resolve_today(today)
    now = now or utc_now

    existing = store.list_alerts(owner_id=owner_id, vehicle_id=vehicle.id)
    read_keys = {a.key for a in existing if a.is_read}
    unread: Dict[AlertKey, Alert] = {}
    for alert in sorted(existing, key=lambda a: parse_timestamp(a.created_at)):
        if alert.is_read:
            continue
        if alert.key in unread:
            # Collapse duplicates onto the oldest alert
            store.delete_alert(alert.id)
            continue
        unread[alert.key] = alert

    desired: Dict[AlertKey, ObligationStatus] = {}
    for obligation in due_obligations(vehicle, today, warning_days):
        desired[alert_key_for(vehicle, obligation, owner_id)] = obligation

    for key, alert in list(unread.items()):
        if key not in desired:
            store.delete_alert(alert.id)
            del unread[key]
            logger.info(f"[ALERT][SUPERSEDED] {vehicle.registration_number} {alert.label} due {alert.due_date}")

    for key, obligation in desired.items():
        message = alert_message(vehicle, obligation)
        alert = unread.get(key)
        if alert is not None:
            if alert.message != message or alert.vehicle_registration != vehicle.registration_number:
                alert.message = message
                alert.vehicle_registration = vehicle.registration_number
                store.put_alert(alert)
            continue
        if key in read_keys:
            continue

        doc = obligation.document
        alert = Alert(
            id=uuid.uuid4().hex,
            vehicle_id=vehicle.id,
            vehicle_registration=vehicle.registration_number,
            kind=obligation.kind,
            custom_type_name=obligation.custom_type_name,
            reference_number=doc.reference_number,
            due_date=doc.expiry_date,
            message=message,
            created_at=timestamp(now()),
            owner_id=owner_id,
        )
        store.put_alert(alert)
        unread[key] = alert
        logger.info(f"[ALERT][{obligation.status.name}] {message}")

    return sorted(unread.values(), key=lambda a: (a.due_date, a.label))


@dataclass
class FleetSyncResult:
    """Outcome of a fleet-wide synchronization pass."""

    alerts: Dict[str, List[Alert]] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def unread_count(self) -> int:
        return sum(len(alerts) for alerts in self.alerts.values())


def synchronize_fleet(
    store: Store,
    owner_id: str,
    today: Optional[date] = None,
    warning_days: int = WARNING_DAYS,
    now: Optional[Callable[[], datetime]] = None,
    vehicles: Optional[List[Vehicle]] = None,
    lock_for: Optional[Callable[[str], ContextManager[None]]] = None,
) -> FleetSyncResult:
    """
    Synchronize every vehicle. A failure on one vehicle doesn't stop the rest.

    ``lock_for`` optionally supplies a per-vehicle lock held around each pass.
    """
    today = resolve_today(today)
    result = FleetSyncResult()
    if vehicles is None:
        vehicles = store.list_vehicles()
    for vehicle in vehicles:
        try:
            with lock_for(vehicle.id) if lock_for else nullcontext():
                if lock_for:
                    # Re-read under the lock; the listed snapshot may be stale
                    vehicle = store.get_vehicle(vehicle.id) or vehicle
                result.alerts[vehicle.id] = synchronize(store, vehicle, owner_id, today, warning_days, now)
        except Exception as exc:  # noqa: BLE001 - isolate per-vehicle failures
            logger.error(f"[ALERT][SYNC FAILED] {vehicle.registration_number}: {exc}")
            result.failures[vehicle.id] = str(exc)
    return result
