"""ObligationStatus dataclass for the computed state of one tracked document."""

from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from .status import DocumentStatus
from .document import DocumentKind, obligation_label

if TYPE_CHECKING:
    from .document import Document


@dataclass
class ObligationStatus:
    """Governing document and status for one (kind, custom name) pair."""

    kind: DocumentKind
    status: DocumentStatus
    custom_type_name: Optional[str] = None
    document: Optional["Document"] = None
    days_remaining: Optional[int] = None

    @property
    def label(self) -> str:
        return obligation_label(self.kind, self.custom_type_name)

    @property
    def due_date(self) -> Optional[str]:
        return self.document.expiry_date if self.document else None

    @property
    def is_due(self) -> bool:
        return self.status in (DocumentStatus.OVERDUE, DocumentStatus.EXPIRING_SOON)
