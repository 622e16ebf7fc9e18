"""Schema validation of engine inputs and stored vehicle files."""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from .dates import parse_iso_date
from .errors import ValidationError

SCHEMA_PATH = Path(__file__).parent / "schema.yaml"


@lru_cache(maxsize=None)
def load_schema() -> dict:
    """Load the JSON schema from schema.yaml."""
    with open(SCHEMA_PATH) as f:
        return yaml.safe_load(f)


def _definition(name: str) -> dict:
    schema = load_schema()
    return {"$ref": f"#/definitions/{name}", "definitions": schema["definitions"]}


def _check(instance: Any, schema: dict) -> None:
    """Raise ValidationError describing the most relevant schema violation."""
    error = best_match(Draft7Validator(schema).iter_errors(instance))
    if error is None:
        return
    where = ".".join(str(p) for p in error.absolute_path)
    message = f"{where}: {error.message}" if where else error.message
    raise ValidationError(message)


def validate_vehicle_record(data: Dict[str, Any]) -> None:
    """Validate a full stored vehicle record (as written to YAML)."""
    _check(data, load_schema())


def validate_vehicle_input(data: Dict[str, Any]) -> None:
    _check(data, _definition("vehicleInput"))


def validate_vehicle_update(data: Dict[str, Any]) -> None:
    _check(data, _definition("vehicleUpdate"))


def require_date(field: str, value: Optional[str]) -> None:
    """Reject strings that match YYYY-MM-DD but are not calendar dates."""
    if value is not None and parse_iso_date(value) is None:
        raise ValidationError(f"{field}: '{value}' is not a valid YYYY-MM-DD date")


def validate_document_input(data: Dict[str, Any]) -> None:
    """
    Validate an uploaded document before it is appended.

    Checks structure against the schema, then that dates are real calendar
    dates and that the validity period is not inverted.
    """
    _check(data, _definition("documentInput"))
    require_date("startDate", data.get("startDate"))
    require_date("expiryDate", data.get("expiryDate"))

    start = parse_iso_date(data.get("startDate"))
    expiry = parse_iso_date(data.get("expiryDate"))
    if start and expiry and start > expiry:
        raise ValidationError("startDate must not be after expiryDate")
