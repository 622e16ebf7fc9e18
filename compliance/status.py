"""Status enums for document and vehicle compliance."""

from enum import Enum


class DocumentStatus(Enum):
    """Compliance status of a single document. Lower value = more urgent."""

    OVERDUE = 1
    EXPIRING_SOON = 2
    COMPLIANT = 3
    MISSING = 4  # No usable expiry date

    @property
    def label(self) -> str:
        return _LABELS[self]


class VehicleStatus(Enum):
    """Aggregate compliance status of a vehicle. Lower value = more urgent."""

    OVERDUE = 1
    EXPIRING_SOON = 2
    MISSING_INFO = 3  # Essential document never established
    COMPLIANT = 4

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    DocumentStatus.OVERDUE: "Overdue",
    DocumentStatus.EXPIRING_SOON: "Expiring Soon",
    DocumentStatus.COMPLIANT: "Compliant",
    DocumentStatus.MISSING: "Missing",
    VehicleStatus.OVERDUE: "Overdue",
    VehicleStatus.EXPIRING_SOON: "Expiring Soon",
    VehicleStatus.MISSING_INFO: "Missing Info",
    VehicleStatus.COMPLIANT: "Compliant",
}
