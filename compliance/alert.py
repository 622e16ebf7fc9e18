"""Alert records derived from document statuses."""

from typing import NamedTuple, Optional

from .document import DocumentKind, obligation_label


class AlertKey(NamedTuple):
    """Identity used to deduplicate alerts, compared field by field."""

    vehicle_id: str
    kind: DocumentKind
    custom_type_name: Optional[str]
    due_date: str
    reference_number: Optional[str]
    owner_id: str


class Alert:
    """An expiry alert for one governing document, owned by one user."""

    def __init__(
            self,
            id: str,
            vehicle_id: str,
            vehicle_registration: str,
            kind: DocumentKind,
            due_date: str,
            message: str,
            created_at: str,
            owner_id: str,
            custom_type_name: Optional[str] = None,
            reference_number: Optional[str] = None,
            is_read: bool = False,
    ):
        self.id = id
        self.vehicle_id = vehicle_id
        self.vehicle_registration = vehicle_registration
        self.kind = kind
        self.custom_type_name = custom_type_name if kind is DocumentKind.OTHER else None
        self.reference_number = reference_number
        self.due_date = due_date
        self.message = message
        self.created_at = created_at
        self.is_read = is_read
        self.owner_id = owner_id

    @property
    def key(self) -> AlertKey:
        return AlertKey(
            self.vehicle_id,
            self.kind,
            self.custom_type_name,
            self.due_date,
            self.reference_number,
            self.owner_id,
        )

    @property
    def label(self) -> str:
        return obligation_label(self.kind, self.custom_type_name)

    def __repr__(self):
        return f"<Alert {self.id} {self.vehicle_registration} {self.label} read={self.is_read}>"
