"""Vehicle class - the aggregate for a vehicle's document history and compliance."""

from datetime import date
from typing import List, Optional, Tuple

from .classifier import WARNING_DAYS, classify
from .dates import days_until, parse_iso_date, parse_timestamp, resolve_today
from .document import ESSENTIAL_KINDS, Document, DocumentKind, obligation_key
from .obligation_status import ObligationStatus
from .status import DocumentStatus, VehicleStatus

ObligationKey = Tuple[DocumentKind, Optional[str]]

_KIND_ORDER = {kind: index for index, kind in enumerate(DocumentKind)}


def normalize_registration(registration_number: str) -> str:
    """Registration numbers are compared and stored upper case."""
    return (registration_number or "").strip().upper()


class Vehicle:
    """A fleet vehicle with its complete, append-only document history."""

    def __init__(
        self,
        id: str,
        registration_number: str,
        make: str,
        model: str,
        vehicle_type: str,
        created_at: str,
        updated_at: Optional[str] = None,
        documents: Optional[List[Document]] = None,
    ):
        self.id = id
        self.registration_number = normalize_registration(registration_number)
        self.make = make
        self.model = model
        self.vehicle_type = vehicle_type
        self.created_at = created_at
        self.updated_at = updated_at or created_at
        self.documents = documents or []

    @property
    def name(self) -> str:
        """Human-readable vehicle name."""
        return f"{self.registration_number} ({self.make} {self.model})"

    @property
    def last_upload(self) -> Optional[Document]:
        """The most recently uploaded document of any kind."""
        if not self.documents:
            return None
        return max(self.documents, key=lambda d: parse_timestamp(d.uploaded_at))

    def tracked_obligations(self) -> List[ObligationKey]:
        """
        Every (kind, custom name) pair with at least one document.

        Ordered by kind declaration order, then custom name.
        """
        keys = {d.key for d in self.documents}
        return sorted(keys, key=lambda k: (_KIND_ORDER[k[0]], k[1] or ""))

    def get_documents_for(
        self, kind: DocumentKind, custom_type_name: Optional[str] = None
    ) -> List[Document]:
        """All history for one obligation, in upload order."""
        return [d for d in self.documents if d.matches(kind, custom_type_name)]

    def get_documents_sorted(self, reverse: bool = True) -> List[Document]:
        """Documents grouped by kind, newest upload first within each kind."""
        by_upload = sorted(
            self.documents, key=lambda d: parse_timestamp(d.uploaded_at), reverse=reverse
        )
        return sorted(by_upload, key=lambda d: (_KIND_ORDER[d.kind], d.custom_type_name or ""))

    def latest_for(
        self, kind: DocumentKind, custom_type_name: Optional[str] = None
    ) -> Optional[Document]:
        """
        Find the governing document for an obligation.

        Only documents with a usable expiry date qualify. The one expiring
        furthest in the future wins, so a renewal supersedes older papers and
        re-uploading an old scan never overrides a newer one. Ties go to the
        most recent upload.
        """
        candidates = [d for d in self.get_documents_for(kind, custom_type_name) if d.has_expiry]
        if not candidates:
            return None
        return max(
            candidates,
            key=lambda d: (parse_iso_date(d.expiry_date), parse_timestamp(d.uploaded_at)),
        )

    def obligation_status(
        self,
        kind: DocumentKind,
        custom_type_name: Optional[str] = None,
        today: Optional[date] = None,
        warning_days: int = WARNING_DAYS,
    ) -> ObligationStatus:
        """Classify the governing document of one obligation."""
        kind, custom_type_name = obligation_key(kind, custom_type_name)
        governing = self.latest_for(kind, custom_type_name)
        if governing is None:
            return ObligationStatus(
                kind=kind, custom_type_name=custom_type_name, status=DocumentStatus.MISSING
            )

        today = resolve_today(today)
        return ObligationStatus(
            kind=kind,
            custom_type_name=custom_type_name,
            status=classify(governing.expiry_date, today, warning_days),
            document=governing,
            days_remaining=days_until(parse_iso_date(governing.expiry_date), today),
        )

    def get_all_obligation_status(
        self, today: Optional[date] = None, warning_days: int = WARNING_DAYS
    ) -> List[ObligationStatus]:
        """Calculate status for every tracked obligation."""
        today = resolve_today(today)
        return [
            self.obligation_status(kind, custom_type_name, today, warning_days)
            for kind, custom_type_name in self.tracked_obligations()
        ]

    def overall_status(
        self, today: Optional[date] = None, warning_days: int = WARNING_DAYS
    ) -> VehicleStatus:
        """
        Combine obligation statuses into one verdict for the vehicle.

        Overdue on any obligation wins, then expiring soon. Only when neither
        applies does a missing essential document make the vehicle MISSING_INFO.
        """
        statuses = [s.status for s in self.get_all_obligation_status(today, warning_days)]

        if DocumentStatus.OVERDUE in statuses:
            return VehicleStatus.OVERDUE
        if DocumentStatus.EXPIRING_SOON in statuses:
            return VehicleStatus.EXPIRING_SOON
        for kind in ESSENTIAL_KINDS:
            if self.latest_for(kind) is None:
                return VehicleStatus.MISSING_INFO
        return VehicleStatus.COMPLIANT

    def __repr__(self):
        return f"<Vehicle {self.id} {self.registration_number} docs={len(self.documents)}>"
