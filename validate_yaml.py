#!/usr/bin/env python3
"""Validate stored vehicle YAML files against the schema."""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from compliance import ValidationError, load_settings
from compliance.dates import parse_iso_date
from compliance.validation import validate_vehicle_record


def validate_vehicle_file(filepath: Path) -> List[str]:
    """Validate a single vehicle YAML file. Returns list of errors."""
    errors = []
    try:
        with open(filepath) as f:
            data = yaml.safe_load(f)
        validate_vehicle_record(data)
    except yaml.YAMLError as e:
        errors.append(f"YAML parse error: {e}")
        return errors
    except ValidationError as e:
        errors.append(f"Schema validation error: {e}")
        return errors
    except OSError as e:
        errors.append(f"Error: {e}")
        return errors

    if data["id"] != filepath.stem:
        errors.append(f"id '{data['id']}' does not match file name")

    # The schema checks the date shape; calendar validity is checked here
    for index, doc in enumerate(data.get("documents") or []):
        for field in ("startDate", "expiryDate"):
            value = doc.get(field)
            if value is not None and parse_iso_date(value) is None:
                errors.append(f"documents.{index}.{field}: '{value}' is not a calendar date")
        if doc.get("vehicleId") != data["id"]:
            errors.append(f"documents.{index}.vehicleId does not match vehicle id")
    return errors


def main(argv: Optional[List[str]] = None) -> int:
    """Validate all vehicle YAML files in <data_dir>/vehicles/."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--data-dir", type=Path, help="Data directory (default from config)")
    args = parser.parse_args(argv)

    data_dir = args.data_dir or load_settings().data_dir
    vehicles_dir = Path(data_dir) / "vehicles"

    if not vehicles_dir.exists():
        print(f"Error: vehicles directory not found: {vehicles_dir}")
        return 1

    yaml_files = list(vehicles_dir.glob("*.yaml")) + list(vehicles_dir.glob("*.yml"))

    if not yaml_files:
        print(f"Warning: No YAML files found in {vehicles_dir}")
        return 0

    all_valid = True
    for filepath in sorted(yaml_files):
        errors = validate_vehicle_file(filepath)
        if errors:
            print(f"FAIL: {filepath.name}")
            for error in errors:
                print(f"  {error}")
            all_valid = False
        else:
            print(f"OK: {filepath.name}")

    return 0 if all_valid else 1


if __name__ == "__main__":
    sys.exit(main())
