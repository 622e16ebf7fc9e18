#!/usr/bin/env python3
"""
Tests for ComplianceService.

End-to-end behaviour over a YAML store in a temporary directory: mutations,
alert synchronization after each mutation, and the audit trail.
"""

import csv
import io
import threading

import pytest

from compliance import (
    AuditAction,
    AuditFilter,
    ComplianceService,
    DocumentKind,
    DocumentStatus,
    EntityType,
    NotFoundError,
    RetryingStore,
    Settings,
    StoreUnavailable,
    ValidationError,
    VehicleStatus,
    YamlStore,
)

USER = "alice"


@pytest.fixture
def truck(service):
    return service.create_vehicle(USER, "ka01cd5678", "Volvo", "FH", "Truck")


def actions(service):
    return [e.action for e in reversed(service.list_audit_entries())]


# =============================================================================
# Vehicles
# =============================================================================


class TestVehicles:
    """Tests for vehicle create, update and delete."""

    def test_create_normalizes_and_audits(self, service, truck):
        assert truck.registration_number == "KA01CD5678"
        assert service.get_vehicle(truck.id).make == "Volvo"
        [entry] = service.list_audit_entries()
        assert entry.action is AuditAction.CREATE_VEHICLE
        assert entry.entity_registration == "KA01CD5678"

    def test_duplicate_registration_rejected(self, service, truck):
        with pytest.raises(ValidationError, match="already exists"):
            service.create_vehicle(USER, " KA01CD5678 ", "Tata", "Ace", "Truck")

    def test_blank_fields_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_vehicle(USER, "", "Volvo", "FH")
        assert service.list_vehicles() == []

    def test_find_by_id_or_registration(self, service, truck):
        assert service.find_vehicle(truck.id).id == truck.id
        assert service.find_vehicle("ka01cd5678").id == truck.id
        assert service.find_vehicle("nope") is None

    def test_update_audits_diff(self, service, truck):
        service.update_vehicle(USER, truck.id, model="FMX", make="Volvo")
        entry = service.list_audit_entries(AuditFilter(action=AuditAction.UPDATE_VEHICLE))[0]
        assert entry.details == {"updates": {"model": {"old": "FH", "new": "FMX"}}}

    def test_update_without_changes_not_audited(self, service, truck):
        service.update_vehicle(USER, truck.id, make="Volvo")
        assert AuditAction.UPDATE_VEHICLE not in actions(service)

    def test_update_registration_refreshes_alerts(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-20", reference_number="P1")
        service.update_vehicle(USER, truck.id, registration_number="ka99zz0001")
        [alert] = service.list_alerts(USER)
        assert alert.vehicle_registration == "KA99ZZ0001"
        assert "KA99ZZ0001" in alert.message

    def test_update_to_taken_registration_rejected(self, service, truck):
        other = service.create_vehicle(USER, "MH12AB1234", "Toyota", "Camry")
        with pytest.raises(ValidationError):
            service.update_vehicle(USER, other.id, registration_number="KA01CD5678")

    def test_update_unknown_field(self, service, truck):
        with pytest.raises(ValidationError):
            service.update_vehicle(USER, truck.id, colour="red")

    def test_update_missing_vehicle(self, service):
        with pytest.raises(NotFoundError):
            service.update_vehicle(USER, "missing", make="Tata")

    def test_delete_cascades_alerts_for_all_owners(self, service, truck):
        service.upload_document(USER, truck.id, "Fitness", expiry_date="2025-01-01")
        service.synchronize("bob", truck.id)
        assert len(service.store.list_alerts(vehicle_id=truck.id)) == 2

        service.delete_vehicle(USER, truck.id)
        assert service.get_vehicle(truck.id) is None
        assert service.store.list_alerts() == []
        entry = service.list_audit_entries(AuditFilter(action=AuditAction.DELETE_VEHICLE))[0]
        assert entry.details["deletedAlerts"] == 2
        # History survives the vehicle
        assert AuditAction.UPLOAD_DOCUMENT in actions(service)

    def test_delete_missing_vehicle(self, service):
        with pytest.raises(NotFoundError):
            service.delete_vehicle(USER, "missing")

    def test_delete_releases_vehicle_lock(self, service, truck):
        service.synchronize(USER, truck.id)
        assert truck.id in service._locks
        service.delete_vehicle(USER, truck.id)
        assert truck.id not in service._locks

    def test_failed_alert_cleanup_keeps_vehicle(self, service, truck, monkeypatch):
        service.upload_document(USER, truck.id, "Fitness", expiry_date="2025-01-01")

        def unavailable(alert_id):
            raise StoreUnavailable("disk gone")

        monkeypatch.setattr(service.store, "delete_alert", unavailable)
        with pytest.raises(StoreUnavailable):
            service.delete_vehicle(USER, truck.id)
        assert service.get_vehicle(truck.id) is not None
        assert AuditAction.DELETE_VEHICLE not in actions(service)

        monkeypatch.undo()
        service.delete_vehicle(USER, truck.id)
        assert service.get_vehicle(truck.id) is None
        assert service.store.list_alerts() == []


# =============================================================================
# Documents and alerts
# =============================================================================


class TestUploadDocument:
    """Tests for document upload and the alerts it triggers."""

    def test_expiring_and_overdue_scenario(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-25", reference_number="POL-1")
        service.upload_document(USER, truck.id, "Fitness", expiry_date="2025-01-10")

        overall, obligations = service.vehicle_status(truck.id)
        assert overall is VehicleStatus.OVERDUE
        assert {o.kind: o.status for o in obligations} == {
            DocumentKind.INSURANCE: DocumentStatus.EXPIRING_SOON,
            DocumentKind.FITNESS: DocumentStatus.OVERDUE,
        }
        alerts = service.list_alerts(USER, only_unread=True)
        assert sorted(a.due_date for a in alerts) == ["2025-01-10", "2025-01-25"]

    def test_renewal_supersedes_alert(self, service, truck):
        old = service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-20")
        assert len(service.list_alerts(USER)) == 1

        new = service.upload_document(USER, truck.id, "Insurance", expiry_date="2026-01-15")
        vehicle = service.get_vehicle(truck.id)
        assert vehicle.latest_for(DocumentKind.INSURANCE).id == new.id
        assert old.id in [d.id for d in vehicle.documents]
        assert service.list_alerts(USER) == []

    def test_missing_pollution_certificate(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2026-06-01")
        service.upload_document(USER, truck.id, "Fitness", expiry_date="2026-06-01")
        overall, _ = service.vehicle_status(truck.id)
        assert overall is VehicleStatus.MISSING_INFO

    def test_kind_names_case_insensitive(self, service, truck):
        doc = service.upload_document(USER, truck.id, "pollution", expiry_date="2026-06-01")
        assert doc.kind is DocumentKind.POLLUTION

    def test_other_needs_custom_name(self, service, truck):
        with pytest.raises(ValidationError):
            service.upload_document(USER, truck.id, "Other", expiry_date="2026-06-01")
        doc = service.upload_document(USER, truck.id, "Other", expiry_date="2026-06-01",
                                      custom_type_name=" Goods permit ")
        assert doc.custom_type_name == "Goods permit"

    def test_invalid_input_leaves_vehicle_unchanged(self, service, truck):
        with pytest.raises(ValidationError):
            service.upload_document(USER, truck.id, "Fitness", expiry_date="2025-02-30")
        with pytest.raises(ValidationError):
            service.upload_document(USER, truck.id, "Visa", expiry_date="2025-06-01")
        assert service.get_vehicle(truck.id).documents == []
        assert AuditAction.UPLOAD_DOCUMENT not in actions(service)

    def test_unknown_vehicle(self, service):
        with pytest.raises(NotFoundError):
            service.upload_document(USER, "missing", "Insurance", expiry_date="2026-01-01")

    def test_suggestions_stored_but_not_applied(self, service, truck):
        doc = service.upload_document(
            USER, truck.id, "Insurance", expiry_date="2026-03-01",
            suggestions={"expiryDate": ("2026-02-28", 0.71), "referenceNumber": ("POL-9", 0.4)},
        )
        stored = service.get_vehicle(truck.id).documents[0]
        assert stored.expiry_date == "2026-03-01"
        assert stored.reference_number is None
        assert stored.suggestions["expiryDate"].confidence == 0.71
        entry = service.list_audit_entries(AuditFilter(action=AuditAction.UPLOAD_DOCUMENT))[0]
        assert entry.entity_id == doc.id
        assert entry.details["suggestions"]["expiryDate"] == {"value": "2026-02-28", "confidence": 0.71}

    def test_bad_confidence_rejected(self, service, truck):
        with pytest.raises(ValidationError):
            service.upload_document(USER, truck.id, "Insurance", expiry_date="2026-03-01",
                                    suggestions={"expiryDate": ("2026-03-01", 2)})

    def test_vehicle_status_unknown(self, service):
        assert service.vehicle_status("missing") is None

    def test_alert_sync_failure_keeps_upload_audited(self, service, truck, monkeypatch):
        def unavailable(alert):
            raise StoreUnavailable("disk gone")

        monkeypatch.setattr(service.store, "put_alert", unavailable)
        with pytest.raises(StoreUnavailable):
            service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-20")

        [doc] = service.get_vehicle(truck.id).documents
        [entry] = service.list_audit_entries(AuditFilter(action=AuditAction.UPLOAD_DOCUMENT))
        assert entry.entity_id == doc.id
        assert service.list_alerts(USER) == []

        monkeypatch.undo()
        [alert] = service.synchronize(USER, truck.id)
        assert alert.kind is DocumentKind.INSURANCE


class TestAlerts:
    """Tests for alert listing and acknowledgment."""

    def test_mark_read_not_resurrected(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-25")
        [alert] = service.list_alerts(USER)
        service.mark_alert_read(USER, alert.id)

        assert service.synchronize(USER, truck.id) == []
        assert service.list_alerts(USER, only_unread=True) == []
        assert service.list_alerts(USER)[0].is_read

    def test_other_users_alert_not_found(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-25")
        [alert] = service.list_alerts(USER)
        with pytest.raises(NotFoundError):
            service.mark_alert_read("mallory", alert.id)
        with pytest.raises(NotFoundError):
            service.mark_alert_read(USER, "missing")

    def test_mark_read_audited(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-25")
        [alert] = service.list_alerts(USER)
        service.mark_alert_read(USER, alert.id)
        entry = service.list_audit_entries(AuditFilter(entity_type=EntityType.ALERT))[0]
        assert entry.details["dueDate"] == "2025-01-25"

    def test_fleet_sync(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-25")
        result = service.synchronize_fleet("bob")
        assert result.ok
        assert result.unread_count == 1
        assert len(service.list_alerts("bob")) == 1


# =============================================================================
# Summary, reports, seeding and concurrency
# =============================================================================


class TestReports:
    """Tests for summary and report operations."""

    def test_summary(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-25")
        summary = service.summary()
        assert summary.total_vehicles == 1
        assert summary.compliance_breakdown.expiring_soon == 1

    def test_report_view_and_export_audited(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-25")
        service.upload_document(USER, truck.id, "Fitness", expiry_date="2026-01-25")

        rows = service.expiring_report(USER, statuses=[DocumentStatus.EXPIRING_SOON])
        assert [r.document.kind for r in rows] == [DocumentKind.INSURANCE]
        buf = io.StringIO()
        service.export_expiring_report(USER, buf)
        lines = list(csv.reader(io.StringIO(buf.getvalue())))
        assert lines[0][0] == "Registration"
        assert [line[1] for line in lines[1:]] == ["Insurance", "Fitness"]
        assert lines[1][-1] == "10"

        view, export = (
            service.list_audit_entries(AuditFilter(action=AuditAction.VIEW_REPORT))[0],
            service.list_audit_entries(AuditFilter(action=AuditAction.EXPORT_REPORT))[0],
        )
        assert view.details["filtersApplied"]["statuses"] == ["EXPIRING_SOON"]
        assert view.details["rowCount"] == 1
        assert export.details["format"] == "csv"
        assert export.details["rowCount"] == 2

    def test_failed_export_not_audited(self, service, truck):
        service.upload_document(USER, truck.id, "Insurance", expiry_date="2025-01-25")

        class BrokenStream(io.StringIO):
            def write(self, s):
                raise OSError("disk full")

        with pytest.raises(OSError):
            service.export_expiring_report(USER, BrokenStream())
        assert AuditAction.EXPORT_REPORT not in actions(service)

    def test_audit_query_rejects_malformed_date(self, service, truck):
        with pytest.raises(ValidationError):
            service.list_audit_entries(AuditFilter(date_from="2099-13-45"))


class TestSeedDemoFleet:
    """Tests for seed_demo_fleet."""

    def test_seeds_four_vehicles_with_history(self, service):
        vehicles = service.seed_demo_fleet(USER)
        assert [v.registration_number for v in vehicles] == [
            "MH12AB1234", "KA01CD5678", "DL03EF9012", "TN07GH4567",
        ]
        car = vehicles[0]
        assert len(car.documents) == 9
        assert DocumentKind.PERMIT not in {d.kind for d in car.documents}
        assert len(vehicles[1].documents) == 12
        assert actions(service)[-1] is AuditAction.SYSTEM_INIT

    def test_deterministic_for_seed(self, service, clock, tmp_path):
        first = service.seed_demo_fleet(USER, seed=7)
        other = ComplianceService(
            YamlStore(tmp_path / "other"), Settings(), clock=service.clock, now=clock,
        )
        second = other.seed_demo_fleet(USER, seed=7)
        assert [d.expiry_date for d in first[2].documents] == [d.expiry_date for d in second[2].documents]


class TestConcurrency:
    """Tests for concurrent uploads through one service."""

    def test_parallel_uploads_keep_every_document(self, service, truck):
        errors = []

        def upload(n):
            try:
                service.upload_document(USER, truck.id, "Other", expiry_date="2025-01-20",
                                        custom_type_name=f"Permit {n}")
            except Exception as exc:  # pragma: no cover - reported below
                errors.append(exc)

        threads = [threading.Thread(target=upload, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(service.get_vehicle(truck.id).documents) == 8
        assert len(service.list_alerts(USER)) == 8


class TestFromSettings:
    """Tests for ComplianceService.from_settings."""

    def test_wraps_yaml_store_with_retries(self, tmp_path):
        service = ComplianceService.from_settings(Settings(data_dir=tmp_path, store_retries=5))
        assert isinstance(service.store, RetryingStore)
        assert service.store.policy.max_attempts == 5
        assert service.store.inner.data_dir == tmp_path
