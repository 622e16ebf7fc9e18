"""Persistence contract and the YAML directory store."""

import re
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

import yaml

from .alert import Alert
from .audit import AuditFilter, AuditLogEntry
from .dates import parse_timestamp
from .errors import StoreUnavailable
from .loader import (
    alert_from_dict,
    alert_to_dict,
    audit_entry_from_dict,
    audit_entry_to_dict,
    dump_yaml,
    find_index,
    load_list,
    load_vehicle,
    save_vehicle,
)
from .logger import get_logger
from .vehicle import Vehicle

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")

# Raised while decoding a file that is not a valid record
_CORRUPT = (yaml.YAMLError, KeyError, TypeError, ValueError, AttributeError)

logger = get_logger(__name__)


class Store(ABC):
    """Everything the engine needs from persistence."""

    @abstractmethod
    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]: ...

    @abstractmethod
    def list_vehicles(self) -> List[Vehicle]: ...

    @abstractmethod
    def put_vehicle(self, vehicle: Vehicle) -> None: ...

    @abstractmethod
    def delete_vehicle(self, vehicle_id: str) -> bool: ...

    @abstractmethod
    def list_alerts(
        self,
        owner_id: Optional[str] = None,
        only_unread: bool = False,
        vehicle_id: Optional[str] = None,
    ) -> List[Alert]: ...

    @abstractmethod
    def get_alert(self, alert_id: str) -> Optional[Alert]: ...

    @abstractmethod
    def put_alert(self, alert: Alert) -> None: ...

    @abstractmethod
    def delete_alert(self, alert_id: str) -> bool: ...

    @abstractmethod
    def mark_alert_read(self, alert_id: str) -> bool: ...

    @abstractmethod
    def append_audit_entry(self, entry: AuditLogEntry) -> None: ...

    @abstractmethod
    def list_audit_entries(self, audit_filter: Optional[AuditFilter] = None) -> List[AuditLogEntry]: ...


class YamlStore(Store):
    """
    Stores data as YAML files under one directory:

    - vehicles/<id>.yaml: one vehicle with its document history
    - alerts.yaml: every alert for every owner
    - audit.yaml: the audit trail

    All access goes through one lock. Failing to get the lock within
    ``timeout`` seconds, or an I/O or parse error, raises StoreUnavailable.
    """

    def __init__(self, data_dir: Union[str, Path], timeout: float = 5.0):
        self.data_dir = Path(data_dir)
        self.timeout = timeout
        self._lock = threading.RLock()

    @property
    def vehicles_dir(self) -> Path:
        return self.data_dir / "vehicles"

    @property
    def alerts_file(self) -> Path:
        return self.data_dir / "alerts.yaml"

    @property
    def audit_file(self) -> Path:
        return self.data_dir / "audit.yaml"

    def vehicle_path(self, vehicle_id: str) -> Optional[Path]:
        """File for a vehicle id, or None if the id can't be a file name."""
        if not vehicle_id or not _SAFE_ID.match(vehicle_id):
            return None
        return self.vehicles_dir / f"{vehicle_id}.yaml"

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.timeout):
            raise StoreUnavailable(f"Timed out after {self.timeout}s waiting for {self.data_dir}")
        try:
            yield
        except (OSError,) + _CORRUPT as exc:
            raise StoreUnavailable(f"Store error in {self.data_dir}: {exc}") from exc
        finally:
            self._lock.release()

    # -- vehicles -------------------------------------------------------------

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        path = self.vehicle_path(vehicle_id)
        if path is None:
            return None
        with self._locked():
            if not path.exists():
                return None
            return load_vehicle(path)

    def list_vehicles(self) -> List[Vehicle]:
        """Every stored vehicle. Files that don't load as a vehicle are logged and skipped."""
        vehicles = []
        with self._locked():
            if not self.vehicles_dir.exists():
                return []
            for path in self.vehicles_dir.glob("*.yaml"):
                try:
                    vehicles.append(load_vehicle(path))
                except _CORRUPT as exc:
                    logger.error(f"[STORE][CORRUPT] Skipping {path.name}: {exc!r}")
        return sorted(vehicles, key=lambda v: v.registration_number)

    def put_vehicle(self, vehicle: Vehicle) -> None:
        path = self.vehicle_path(vehicle.id)
        if path is None:
            raise ValueError(f"Invalid vehicle id: {vehicle.id!r}")
        with self._locked():
            save_vehicle(path, vehicle)

    def delete_vehicle(self, vehicle_id: str) -> bool:
        path = self.vehicle_path(vehicle_id)
        if path is None:
            return False
        with self._locked():
            if not path.exists():
                return False
            path.unlink()
            return True

    # -- alerts ---------------------------------------------------------------

    def list_alerts(
        self,
        owner_id: Optional[str] = None,
        only_unread: bool = False,
        vehicle_id: Optional[str] = None,
    ) -> List[Alert]:
        """Alerts, newest first. ``owner_id=None`` means every owner."""
        with self._locked():
            alerts = [alert_from_dict(a) for a in load_list(self.alerts_file)]
        if owner_id is not None:
            alerts = [a for a in alerts if a.owner_id == owner_id]
        if vehicle_id is not None:
            alerts = [a for a in alerts if a.vehicle_id == vehicle_id]
        if only_unread:
            alerts = [a for a in alerts if not a.is_read]
        return sorted(alerts, key=lambda a: parse_timestamp(a.created_at), reverse=True)

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self._locked():
            alerts = load_list(self.alerts_file)
            index = find_index(alerts, alert_id)
            return alert_from_dict(alerts[index]) if index is not None else None

    def put_alert(self, alert: Alert) -> None:
        """Insert or replace an alert by id."""
        with self._locked():
            alerts = load_list(self.alerts_file)
            index = find_index(alerts, alert.id)
            if index is None:
                alerts.append(alert_to_dict(alert))
            else:
                alerts[index] = alert_to_dict(alert)
            dump_yaml(self.alerts_file, alerts)

    def delete_alert(self, alert_id: str) -> bool:
        with self._locked():
            alerts = load_list(self.alerts_file)
            index = find_index(alerts, alert_id)
            if index is None:
                return False
            del alerts[index]
            dump_yaml(self.alerts_file, alerts)
            return True

    def mark_alert_read(self, alert_id: str) -> bool:
        with self._locked():
            alerts = load_list(self.alerts_file)
            index = find_index(alerts, alert_id)
            if index is None:
                return False
            alerts[index]["isRead"] = True
            dump_yaml(self.alerts_file, alerts)
            return True

    # -- audit ----------------------------------------------------------------

    def append_audit_entry(self, entry: AuditLogEntry) -> None:
        with self._locked():
            entries = load_list(self.audit_file)
            entries.append(audit_entry_to_dict(entry))
            dump_yaml(self.audit_file, entries)

    def list_audit_entries(self, audit_filter: Optional[AuditFilter] = None) -> List[AuditLogEntry]:
        """Audit entries matching the filter, newest first."""
        with self._locked():
            entries = [audit_entry_from_dict(e) for e in load_list(self.audit_file)]
        if audit_filter is not None:
            entries = [e for e in entries if audit_filter.matches(e)]
        return sorted(entries, key=lambda e: parse_timestamp(e.timestamp), reverse=True)
