"""Document kinds and uploaded document records."""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Tuple

from .dates import parse_iso_date


class DocumentKind(Enum):
    """Regulatory document kinds tracked per vehicle."""

    INSURANCE = "Insurance"
    FITNESS = "Fitness"
    POLLUTION = "Pollution"
    PERMIT = "Permit"
    REGISTRATION = "Registration"
    OTHER = "Other"  # Identified further by a custom type name


# A vehicle missing any of these is never fully compliant
ESSENTIAL_KINDS = (DocumentKind.INSURANCE, DocumentKind.FITNESS, DocumentKind.POLLUTION)

VEHICLE_TYPES = ["Car", "Truck", "Bus", "Van", "Motorcycle", "Other"]


class Suggestion(NamedTuple):
    """A machine-extracted field value awaiting human confirmation."""

    value: Optional[str]
    confidence: float


def obligation_key(
    kind: DocumentKind, custom_type_name: Optional[str] = None
) -> Tuple[DocumentKind, Optional[str]]:
    """Identity of a tracked obligation. Custom names only matter for OTHER."""
    if kind is DocumentKind.OTHER:
        return kind, custom_type_name
    return kind, None


def obligation_label(kind: DocumentKind, custom_type_name: Optional[str] = None) -> str:
    """Human-readable name, e.g. 'Insurance' or the custom name for OTHER."""
    if kind is DocumentKind.OTHER and custom_type_name:
        return custom_type_name
    return kind.value


class Document:
    """A single uploaded document. Never mutated once stored."""

    def __init__(
            self,
            id: str,
            vehicle_id: str,
            kind: DocumentKind,
            uploaded_at: str,
            expiry_date: Optional[str] = None,
            custom_type_name: Optional[str] = None,
            reference_number: Optional[str] = None,
            start_date: Optional[str] = None,
            document_name: Optional[str] = None,
            suggestions: Optional[Dict[str, Suggestion]] = None,
    ):
        self.id = id
        self.vehicle_id = vehicle_id
        self.kind = kind
        self.custom_type_name = custom_type_name if kind is DocumentKind.OTHER else None
        self.reference_number = reference_number
        self.start_date = start_date
        self.expiry_date = expiry_date
        self.uploaded_at = uploaded_at
        self.document_name = document_name
        self.suggestions = suggestions or {}

    @property
    def key(self) -> Tuple[DocumentKind, Optional[str]]:
        return obligation_key(self.kind, self.custom_type_name)

    @property
    def label(self) -> str:
        return obligation_label(self.kind, self.custom_type_name)

    @property
    def has_expiry(self) -> bool:
        """True if the expiry date is set and parses as a calendar date."""
        return parse_iso_date(self.expiry_date) is not None

    def matches(self, kind: DocumentKind, custom_type_name: Optional[str] = None) -> bool:
        return self.key == obligation_key(kind, custom_type_name)

    def __repr__(self):
        return f"<Document {self.id} {self.label} expires={self.expiry_date}>"
