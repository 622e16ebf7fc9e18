"""Flask JSON API for fleet document compliance."""

import io
import os
from typing import Any, Dict, List, Optional

from flask import Flask, Response, g, jsonify, request

from compliance import (
    AuditAction,
    AuditFilter,
    ComplianceService,
    DocumentKind,
    DocumentStatus,
    NotFoundError,
    ObligationStatus,
    ReportRow,
    StoreUnavailable,
    ValidationError,
    Vehicle,
    load_settings,
)
from compliance.audit import EntityType
from compliance.loader import alert_to_dict, audit_entry_to_dict, document_to_dict, vehicle_to_dict
from compliance.logger import get_logger
from compliance.service import REPORT_NAME, VEHICLE_FIELDS

logger = get_logger(__name__)

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-prod")

USER_HEADER = "X-User-Id"


def get_service() -> ComplianceService:
    """The configured service, built from settings on first use."""
    service = app.config.get("COMPLIANCE_SERVICE")
    if service is None:
        service = ComplianceService.from_settings(load_settings())
        app.config["COMPLIANCE_SERVICE"] = service
    return service


def parse_enum_list(enum_cls, values: List[str], by_name: bool = False) -> Optional[list]:
    """Query-string values to enum members; unknown values are a 400."""
    if not values:
        return None
    result = []
    for value in values:
        try:
            result.append(enum_cls[value.upper()] if by_name else enum_cls(value))
        except (KeyError, ValueError):
            raise ValidationError(f"Unknown {enum_cls.__name__} value: {value}")
    return result


def obligation_to_dict(ob: ObligationStatus) -> Dict[str, Any]:
    return {
        "kind": ob.kind.value,
        "customTypeName": ob.custom_type_name,
        "label": ob.label,
        "status": ob.status.label,
        "dueDate": ob.due_date,
        "daysRemaining": ob.days_remaining,
        "document": document_to_dict(ob.document) if ob.document else None,
    }


def vehicle_summary(vehicle: Vehicle) -> Dict[str, Any]:
    """Vehicle fields with computed status, without the document history."""
    service = get_service()
    d = vehicle_to_dict(vehicle)
    d.pop("documents")
    d["documentCount"] = len(vehicle.documents)
    d["status"] = vehicle.overall_status(service.clock(), service.warning_days).label
    return d


def report_row_to_dict(row: ReportRow) -> Dict[str, Any]:
    return {
        "vehicleId": row.vehicle_id,
        "vehicleRegistration": row.vehicle_registration,
        "document": document_to_dict(row.document),
        "status": row.status.label,
        "daysDifference": row.days_difference,
    }


# =============================================================================
# Request plumbing
# =============================================================================


@app.before_request
def require_user():
    user_id = (request.headers.get(USER_HEADER) or "").strip()
    if not user_id:
        return jsonify({"error": f"Missing {USER_HEADER} header"}), 400
    g.user_id = user_id
    return None


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(NotFoundError)
def handle_not_found(e):
    return jsonify({"error": str(e), "entityType": e.entity_type, "entityId": e.entity_id}), 404


@app.errorhandler(StoreUnavailable)
def handle_store_unavailable(e):
    logger.error(f"[API][STORE] {request.method} {request.path}: {e}")
    return jsonify({"error": "Storage temporarily unavailable"}), 503


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# =============================================================================
# Vehicles
# =============================================================================


@app.route("/vehicles", methods=["GET"])
def list_vehicles():
    """All vehicles with their overall status."""
    return jsonify([vehicle_summary(v) for v in get_service().list_vehicles()])


@app.route("/vehicles", methods=["POST"])
def create_vehicle():
    data = json_body()
    vehicle = get_service().create_vehicle(
        g.user_id,
        data.get("registrationNumber"),
        data.get("make"),
        data.get("model"),
        data.get("vehicleType") or "Car",
    )
    return jsonify(vehicle_summary(vehicle)), 201


@app.route("/vehicles/<vehicle_id>", methods=["GET"])
def vehicle_detail(vehicle_id: str):
    """Vehicle with document history and per-document status."""
    service = get_service()
    vehicle = service.get_vehicle(vehicle_id)
    status = service.vehicle_status(vehicle_id)
    if vehicle is None or status is None:
        raise NotFoundError("vehicle", vehicle_id)
    overall, obligations = status
    d = vehicle_to_dict(vehicle)
    d["status"] = overall.label
    d["obligations"] = [obligation_to_dict(ob) for ob in obligations]
    return jsonify(d)


@app.route("/vehicles/<vehicle_id>", methods=["PATCH"])
def update_vehicle(vehicle_id: str):
    data = json_body()
    fields = {attr: data[key] for attr, key in VEHICLE_FIELDS.items() if key in data}
    unknown = set(data) - set(VEHICLE_FIELDS.values())
    if unknown:
        raise ValidationError(f"Unknown vehicle field(s): {', '.join(sorted(unknown))}")
    vehicle = get_service().update_vehicle(g.user_id, vehicle_id, **fields)
    return jsonify(vehicle_summary(vehicle))


@app.route("/vehicles/<vehicle_id>", methods=["DELETE"])
def delete_vehicle(vehicle_id: str):
    get_service().delete_vehicle(g.user_id, vehicle_id)
    return "", 204


@app.route("/vehicles/<vehicle_id>/documents", methods=["POST"])
def upload_document(vehicle_id: str):
    """
    Record a document. The body carries the confirmed fields and optionally
    "suggestions": {field: {"value": ..., "confidence": 0..1}}.
    """
    data = json_body()
    doc = get_service().upload_document(
        g.user_id,
        vehicle_id,
        data.get("kind") or "",
        expiry_date=data.get("expiryDate"),
        custom_type_name=data.get("customTypeName"),
        reference_number=data.get("referenceNumber"),
        start_date=data.get("startDate"),
        document_name=data.get("documentName"),
        suggestions=data.get("suggestions"),
    )
    return jsonify(document_to_dict(doc)), 201


# =============================================================================
# Alerts
# =============================================================================


@app.route("/alerts", methods=["GET"])
def list_alerts():
    only_unread = request.args.get("unread", "").lower() == "true"
    alerts = get_service().list_alerts(g.user_id, only_unread=only_unread)
    return jsonify([alert_to_dict(a) for a in alerts])


@app.route("/alerts/<alert_id>/read", methods=["POST"])
def mark_alert_read(alert_id: str):
    get_service().mark_alert_read(g.user_id, alert_id)
    return jsonify({"id": alert_id, "isRead": True})


@app.route("/alerts/sync", methods=["POST"])
def sync_alerts():
    result = get_service().synchronize_fleet(g.user_id)
    return jsonify({
        "vehicles": len(result.alerts),
        "unread": result.unread_count,
        "failures": result.failures,
    }), (200 if result.ok else 207)


# =============================================================================
# Summary, reports and audit
# =============================================================================


@app.route("/summary", methods=["GET"])
def summary():
    s = get_service().summary()
    b = s.compliance_breakdown
    return jsonify({
        "totalVehicles": s.total_vehicles,
        "compliantVehicles": s.compliant_vehicles,
        "expiringSoonDocuments": s.expiring_soon_documents,
        "overdueDocuments": s.overdue_documents,
        "perKindExpiring": {k.value: n for k, n in s.per_kind_expiring.items()},
        "perKindOverdue": {k.value: n for k, n in s.per_kind_overdue.items()},
        "complianceBreakdown": {
            "compliant": b.compliant,
            "expiringSoon": b.expiring_soon,
            "overdue": b.overdue,
            "missingInfo": b.missing_info,
            "total": b.total,
        },
    })


@app.route("/reports/expiring", methods=["GET"])
def expiring_report():
    """?status=overdue&status=expiring_soon&kind=Insurance&format=csv"""
    statuses = parse_enum_list(DocumentStatus, request.args.getlist("status"), by_name=True)
    kinds = parse_enum_list(DocumentKind, request.args.getlist("kind"))
    export_format = request.args.get("format") or None
    if export_format is None:
        rows = get_service().expiring_report(g.user_id, statuses, kinds)
        return jsonify([report_row_to_dict(r) for r in rows])
    if export_format != "csv":
        raise ValidationError(f"Unsupported report format: {export_format}")

    buf = io.StringIO()
    get_service().export_expiring_report(g.user_id, buf, statuses, kinds)
    return Response(
        buf.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={REPORT_NAME}.csv"},
    )


@app.route("/audit", methods=["GET"])
def audit_log():
    entity = request.args.get("entityType")
    action = request.args.get("action")
    audit_filter = AuditFilter(
        user_id=request.args.get("user") or None,
        entity_type=parse_enum_list(EntityType, [entity])[0] if entity else None,
        action=parse_enum_list(AuditAction, [action])[0] if action else None,
        date_from=request.args.get("dateFrom") or None,
        date_to=request.args.get("dateTo") or None,
    )
    entries = get_service().list_audit_entries(audit_filter)
    return jsonify([audit_entry_to_dict(e) for e in entries])


if __name__ == "__main__":
    # Development server only
    app.run(debug=True, host="0.0.0.0", port=5001)
