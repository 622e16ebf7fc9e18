#!/usr/bin/env python3
"""Tests for validate_yaml data-file validation."""

from validate_yaml import main, validate_vehicle_file

VALID = """
id: v1
registrationNumber: MH12AB1234
make: Toyota
model: Camry
vehicleType: Car
createdAt: '2025-01-01T00:00:00+00:00'
documents:
  - id: d1
    vehicleId: v1
    kind: Insurance
    uploadedAt: '2025-01-02T00:00:00+00:00'
    expiryDate: '2025-06-01'
"""


class TestValidateVehicleFile:
    """Tests for validate_vehicle_file function."""

    def test_valid_returns_no_errors(self, tmp_path):
        path = tmp_path / "v1.yaml"
        path.write_text(VALID)
        assert validate_vehicle_file(path) == []

    def test_unknown_kind(self, tmp_path):
        path = tmp_path / "v1.yaml"
        path.write_text(VALID.replace("kind: Insurance", "kind: Passport"))
        errors = validate_vehicle_file(path)
        assert len(errors) == 1
        assert errors[0].startswith("Schema validation error")

    def test_invalid_calendar_date(self, tmp_path):
        path = tmp_path / "v1.yaml"
        path.write_text(VALID.replace("2025-06-01", "2025-02-30"))
        assert validate_vehicle_file(path) == ["documents.0.expiryDate: '2025-02-30' is not a calendar date"]

    def test_id_must_match_file_name(self, tmp_path):
        path = tmp_path / "other.yaml"
        path.write_text(VALID)
        assert validate_vehicle_file(path) == ["id 'v1' does not match file name"]

    def test_yaml_parse_error(self, tmp_path):
        path = tmp_path / "v1.yaml"
        path.write_text("id: [unclosed\n")
        errors = validate_vehicle_file(path)
        assert errors[0].startswith("YAML parse error")


class TestMain:
    """Tests for the validate_yaml entry point."""

    def test_missing_directory(self, tmp_path, capsys):
        assert main(["--data-dir", str(tmp_path)]) == 1
        assert "not found" in capsys.readouterr().out

    def test_reports_each_file(self, tmp_path, capsys):
        vehicles = tmp_path / "vehicles"
        vehicles.mkdir()
        (vehicles / "v1.yaml").write_text(VALID)
        (vehicles / "v2.yaml").write_text(VALID.replace("make: Toyota", "make: ''"))
        assert main(["--data-dir", str(tmp_path)]) == 1
        out = capsys.readouterr().out
        assert "OK: v1.yaml" in out
        assert "FAIL: v2.yaml" in out

    def test_files_written_by_store_are_valid(self, service, tmp_path, capsys):
        vehicle = service.create_vehicle("alice", "KA01CD5678", "Volvo", "FH", "Truck")
        service.upload_document("alice", vehicle.id, "Other", expiry_date="2025-06-01",
                                custom_type_name="Goods permit",
                                suggestions={"expiryDate": ("2025-06-01", 0.9)})
        assert main(["--data-dir", str(tmp_path / "data")]) == 0
