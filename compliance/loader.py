"""YAML (de)serialisation of vehicles, alerts and audit entries."""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .alert import Alert
from .audit import AuditAction, AuditLogEntry, EntityType
from .document import Document, DocumentKind, Suggestion
from .vehicle import Vehicle


def load_yaml(filename: Union[str, Path]) -> Any:
    """Load a YAML file with the safe loader."""
    with open(filename, "r") as fp:
        return yaml.load(fp, Loader=yaml.SafeLoader)


def dump_yaml(filename: Union[str, Path], data: Any) -> None:
    """
    Write data as YAML.

    Writes to a temporary file in the same directory and renames it over the
    target, so readers never see a half-written file.
    """
    filename = Path(filename)
    filename.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=filename.parent, prefix=f".{filename.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as fp:
            yaml.dump(
                data,
                fp,
                Dumper=yaml.SafeDumper,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
                width=120,
            )
        os.replace(tmp_name, filename)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def _put_optional(d: Dict[str, Any], key: str, value: Any) -> None:
    """Set key only for non-None values, for cleaner YAML."""
    if value is not None:
        d[key] = value


# =============================================================================
# Documents and vehicles
# =============================================================================


def document_to_dict(doc: Document) -> Dict[str, Any]:
    """Serialize a Document to the YAML dict format (camelCase keys)."""
    d: Dict[str, Any] = {
        "id": doc.id,
        "vehicleId": doc.vehicle_id,
        "kind": doc.kind.value,
        "uploadedAt": doc.uploaded_at,
    }
    _put_optional(d, "customTypeName", doc.custom_type_name)
    _put_optional(d, "referenceNumber", doc.reference_number)
    _put_optional(d, "startDate", doc.start_date)
    _put_optional(d, "expiryDate", doc.expiry_date)
    _put_optional(d, "documentName", doc.document_name)
    if doc.suggestions:
        d["suggestions"] = {
            field: {"value": s.value, "confidence": s.confidence}
            for field, s in doc.suggestions.items()
        }
    return d


def document_from_dict(dct: Dict[str, Any]) -> Document:
    suggestions = {
        field: Suggestion(s.get("value"), float(s["confidence"]))
        for field, s in (dct.get("suggestions") or {}).items()
    }
    return Document(
        id=dct["id"],
        vehicle_id=dct["vehicleId"],
        kind=DocumentKind(dct["kind"]),
        uploaded_at=dct["uploadedAt"],
        expiry_date=dct.get("expiryDate"),
        custom_type_name=dct.get("customTypeName"),
        reference_number=dct.get("referenceNumber"),
        start_date=dct.get("startDate"),
        document_name=dct.get("documentName"),
        suggestions=suggestions,
    )


def vehicle_to_dict(vehicle: Vehicle) -> Dict[str, Any]:
    """Serialize a Vehicle and its document history."""
    return {
        "id": vehicle.id,
        "registrationNumber": vehicle.registration_number,
        "make": vehicle.make,
        "model": vehicle.model,
        "vehicleType": vehicle.vehicle_type,
        "createdAt": vehicle.created_at,
        "updatedAt": vehicle.updated_at,
        "documents": [document_to_dict(d) for d in vehicle.documents],
    }


def vehicle_from_dict(dct: Dict[str, Any]) -> Vehicle:
    return Vehicle(
        id=dct["id"],
        registration_number=dct["registrationNumber"],
        make=dct["make"],
        model=dct["model"],
        vehicle_type=dct["vehicleType"],
        created_at=dct["createdAt"],
        updated_at=dct.get("updatedAt"),
        documents=[document_from_dict(d) for d in dct.get("documents") or []],
    )


def load_vehicle(filename: Union[str, Path]) -> Vehicle:
    """Load a vehicle from a YAML file."""
    return vehicle_from_dict(load_yaml(filename))


def save_vehicle(filename: Union[str, Path], vehicle: Vehicle) -> None:
    dump_yaml(filename, vehicle_to_dict(vehicle))


# =============================================================================
# Alerts
# =============================================================================


def alert_to_dict(alert: Alert) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": alert.id,
        "vehicleId": alert.vehicle_id,
        "vehicleRegistration": alert.vehicle_registration,
        "kind": alert.kind.value,
        "dueDate": alert.due_date,
        "message": alert.message,
        "createdAt": alert.created_at,
        "isRead": alert.is_read,
        "ownerId": alert.owner_id,
    }
    _put_optional(d, "customTypeName", alert.custom_type_name)
    _put_optional(d, "referenceNumber", alert.reference_number)
    return d


def alert_from_dict(dct: Dict[str, Any]) -> Alert:
    return Alert(
        id=dct["id"],
        vehicle_id=dct["vehicleId"],
        vehicle_registration=dct["vehicleRegistration"],
        kind=DocumentKind(dct["kind"]),
        due_date=dct["dueDate"],
        message=dct["message"],
        created_at=dct["createdAt"],
        owner_id=dct["ownerId"],
        custom_type_name=dct.get("customTypeName"),
        reference_number=dct.get("referenceNumber"),
        is_read=bool(dct.get("isRead", False)),
    )


# =============================================================================
# Audit entries
# =============================================================================


def audit_entry_to_dict(entry: AuditLogEntry) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": entry.id,
        "timestamp": entry.timestamp,
        "userId": entry.user_id,
        "action": entry.action.value,
        "entityType": entry.entity_type.value,
    }
    _put_optional(d, "entityId", entry.entity_id)
    _put_optional(d, "entityRegistration", entry.entity_registration)
    d["details"] = entry.details
    return d


def audit_entry_from_dict(dct: Dict[str, Any]) -> AuditLogEntry:
    return AuditLogEntry(
        id=dct["id"],
        timestamp=dct["timestamp"],
        user_id=dct["userId"],
        action=AuditAction(dct["action"]),
        entity_type=EntityType(dct["entityType"]),
        entity_id=dct.get("entityId"),
        entity_registration=dct.get("entityRegistration"),
        details=dct.get("details") or {},
    )


def load_list(filename: Union[str, Path]) -> List[Dict[str, Any]]:
    """Load a YAML list file, treating a missing or empty file as empty."""
    if not Path(filename).exists():
        return []
    return load_yaml(filename) or []


def find_index(items: List[Dict[str, Any]], item_id: str) -> Optional[int]:
    for index, item in enumerate(items):
        if item.get("id") == item_id:
            return index
    return None
