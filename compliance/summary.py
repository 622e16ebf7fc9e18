"""Fleet-wide summary statistics and the expiring-documents report."""

import csv
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, TextIO

from .classifier import WARNING_DAYS, classify
from .dates import days_until, parse_iso_date, resolve_today
from .document import Document, DocumentKind
from .status import DocumentStatus, VehicleStatus
from .vehicle import Vehicle


@dataclass(frozen=True)
class ComplianceBreakdown:
    """Vehicle counts per overall status. The buckets always sum to total."""

    compliant: int = 0
    expiring_soon: int = 0
    overdue: int = 0
    missing_info: int = 0
    total: int = 0


@dataclass(frozen=True)
class Summary:
    total_vehicles: int
    compliant_vehicles: int
    expiring_soon_documents: int
    overdue_documents: int
    per_kind_expiring: Dict[DocumentKind, int]
    per_kind_overdue: Dict[DocumentKind, int]
    compliance_breakdown: ComplianceBreakdown


def summarize(
    vehicles: Iterable[Vehicle],
    today: Optional[date] = None,
    warning_days: int = WARNING_DAYS,
) -> Summary:
    """
    Count compliance across the fleet.

    Two independent passes per vehicle: the overall status feeds the
    breakdown (with overdue > expiring soon > missing info precedence), and
    every tracked obligation's governing document feeds the flat document
    counts. One vehicle can add to several per-kind counters.
    """
    today = resolve_today(today)
    vehicle_counts = {status: 0 for status in VehicleStatus}
    per_kind_expiring = {kind: 0 for kind in DocumentKind}
    per_kind_overdue = {kind: 0 for kind in DocumentKind}
    total = 0

    for vehicle in vehicles:
        total += 1
        vehicle_counts[vehicle.overall_status(today, warning_days)] += 1

        for obligation in vehicle.get_all_obligation_status(today, warning_days):
            if obligation.status == DocumentStatus.EXPIRING_SOON:
                per_kind_expiring[obligation.kind] += 1
            elif obligation.status == DocumentStatus.OVERDUE:
                per_kind_overdue[obligation.kind] += 1

    breakdown = ComplianceBreakdown(
        compliant=vehicle_counts[VehicleStatus.COMPLIANT],
        expiring_soon=vehicle_counts[VehicleStatus.EXPIRING_SOON],
        overdue=vehicle_counts[VehicleStatus.OVERDUE],
        missing_info=vehicle_counts[VehicleStatus.MISSING_INFO],
        total=total,
    )
    return Summary(
        total_vehicles=total,
        compliant_vehicles=breakdown.compliant,
        expiring_soon_documents=sum(per_kind_expiring.values()),
        overdue_documents=sum(per_kind_overdue.values()),
        per_kind_expiring=per_kind_expiring,
        per_kind_overdue=per_kind_overdue,
        compliance_breakdown=breakdown,
    )


# =============================================================================
# Expiring documents report
# =============================================================================


@dataclass(frozen=True)
class ReportRow:
    vehicle_id: str
    vehicle_registration: str
    document: Document
    status: DocumentStatus
    days_difference: Optional[int]  # Negative when overdue, None when missing


def expiring_documents(
    vehicles: Iterable[Vehicle],
    statuses: Optional[Sequence[DocumentStatus]] = None,
    kinds: Optional[Sequence[DocumentKind]] = None,
    today: Optional[date] = None,
    warning_days: int = WARNING_DAYS,
) -> List[ReportRow]:
    """
    List every document in the fleet's history with its own status.

    Sorted by days left (documents without an expiry date first), then by
    registration number.
    """
    today = resolve_today(today)
    rows = []
    for vehicle in vehicles:
        for doc in vehicle.documents:
            status = classify(doc.expiry_date, today, warning_days)
            if statuses and status not in statuses:
                continue
            if kinds and doc.kind not in kinds:
                continue
            expiry = parse_iso_date(doc.expiry_date)
            rows.append(ReportRow(
                vehicle_id=vehicle.id,
                vehicle_registration=vehicle.registration_number,
                document=doc,
                status=status,
                days_difference=days_until(expiry, today) if expiry else None,
            ))

    return sorted(
        rows,
        key=lambda r: (
            r.days_difference is not None,
            r.days_difference or 0,
            r.vehicle_registration,
        ),
    )


REPORT_CSV_HEADERS = ["Registration", "Document", "Reference", "Start", "Expiry", "Status", "Days"]


def write_report_csv(rows: Iterable[ReportRow], fp: TextIO) -> None:
    """Write report rows as CSV with a header line. Unknown values are left blank."""
    writer = csv.writer(fp)
    writer.writerow(REPORT_CSV_HEADERS)
    for r in rows:
        writer.writerow([
            r.vehicle_registration,
            r.document.label,
            r.document.reference_number or "",
            r.document.start_date or "",
            r.document.expiry_date or "",
            r.status.label,
            "" if r.days_difference is None else r.days_difference,
        ])
