#!/usr/bin/env python3
"""
Unified CLI for fleet document compliance.

Commands:
  vehicles        - List vehicles with their overall compliance status
  status          - Show every tracked document of one vehicle
  add-vehicle     - Register a vehicle
  update-vehicle  - Edit a vehicle's details
  delete-vehicle  - Delete a vehicle and its alerts
  upload          - Record a new document for a vehicle
  alerts          - List your alerts
  read-alert      - Mark an alert as read
  sync            - Resynchronize alerts for the whole fleet
  summary         - Fleet dashboard counters
  report          - Expiring documents report (optionally exported to CSV)
  audit           - Browse the audit trail
  seed            - Load a demo fleet
"""

import argparse
import getpass
import os
import sys
from pathlib import Path
from typing import List, Optional

from tabulate import tabulate

from compliance import (
    Alert,
    AuditAction,
    AuditFilter,
    AuditLogEntry,
    ComplianceError,
    ComplianceService,
    DocumentKind,
    DocumentStatus,
    NotFoundError,
    ObligationStatus,
    ReportRow,
    Summary,
    Vehicle,
    load_settings,
)
from compliance.audit import EntityType
from compliance.document import VEHICLE_TYPES
from compliance.logger import configure_logging

# =============================================================================
# Formatting helpers
# =============================================================================


def format_days(days: Optional[int]) -> str:
    """Format days left for display (e.g., '3mo 15d' or '-2mo 5d')."""
    if days is None:
        return "-"
    sign = "-" if days < 0 else ""
    days = abs(days)
    months = days // 30
    remaining_days = days % 30
    if months > 0:
        return f"{sign}{months}mo {remaining_days}d"
    return f"{sign}{days}d"


def truncate(text: Optional[str], max_len: int = 30) -> str:
    """Truncate text with ellipsis if too long."""
    if text is None:
        return "-"
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def make_status_table(obligations: List[ObligationStatus]) -> List[List[str]]:
    """Convert obligation statuses to table rows."""
    rows = []
    for ob in obligations:
        doc = ob.document
        rows.append(
            [
                ob.label,
                ob.status.label,
                doc.reference_number if doc and doc.reference_number else "-",
                doc.start_date if doc and doc.start_date else "-",
                ob.due_date or "-",
                format_days(ob.days_remaining),
            ]
        )
    return rows


def make_history_table(vehicle: Vehicle) -> List[List[str]]:
    """Every uploaded document, grouped by kind, newest upload first."""
    return [
        [
            d.label,
            d.reference_number or "-",
            d.start_date or "-",
            d.expiry_date or "-",
            d.uploaded_at[:10],
            truncate(d.document_name, 24),
        ]
        for d in vehicle.get_documents_sorted()
    ]


def make_vehicle_table(vehicles: List[Vehicle], service: ComplianceService) -> List[List[str]]:
    today = service.clock()
    return [
        [
            v.registration_number,
            v.vehicle_type,
            f"{v.make} {v.model}",
            v.overall_status(today, service.warning_days).label,
            len(v.documents),
            v.id,
        ]
        for v in vehicles
    ]


def make_alert_table(alerts: List[Alert]) -> List[List[str]]:
    return [
        [a.id, a.due_date, "read" if a.is_read else "UNREAD", truncate(a.message, 80)]
        for a in alerts
    ]


def make_report_table(rows: List[ReportRow]) -> List[List[str]]:
    return [
        [
            r.vehicle_registration,
            r.document.label,
            r.document.reference_number or "-",
            r.document.expiry_date or "-",
            r.status.label,
            format_days(r.days_difference),
        ]
        for r in rows
    ]


def make_audit_table(entries: List[AuditLogEntry]) -> List[List[str]]:
    return [
        [
            e.timestamp[:19],
            e.user_id,
            e.action.value,
            e.entity_type.value,
            e.entity_registration or e.entity_id or "-",
        ]
        for e in entries
    ]


def make_summary_lines(summary: Summary) -> List[str]:
    b = summary.compliance_breakdown
    lines = [
        f"Vehicles: {summary.total_vehicles}",
        f"  Compliant:     {b.compliant}",
        f"  Expiring soon: {b.expiring_soon}",
        f"  Overdue:       {b.overdue}",
        f"  Missing info:  {b.missing_info}",
        f"Documents expiring soon: {summary.expiring_soon_documents}",
        f"Documents overdue:       {summary.overdue_documents}",
    ]
    return lines


def parse_statuses(values: Optional[List[str]]) -> Optional[List[DocumentStatus]]:
    if not values:
        return None
    return [DocumentStatus[v.upper().replace("-", "_")] for v in values]


def parse_kinds(values: Optional[List[str]]) -> Optional[List[DocumentKind]]:
    if not values:
        return None
    return [DocumentKind(v) for v in values]


def require_vehicle(service: ComplianceService, ref: str) -> Vehicle:
    vehicle = service.find_vehicle(ref)
    if vehicle is None:
        raise NotFoundError("vehicle", ref)
    return vehicle


# =============================================================================
# Commands
# =============================================================================


def cmd_vehicles(service, args):
    """List vehicles with their overall compliance status."""
    vehicles = service.list_vehicles()
    if not vehicles:
        print("No vehicles found.")
        return 0
    headers = ["Registration", "Type", "Vehicle", "Status", "Documents", "Id"]
    print(tabulate(make_vehicle_table(vehicles, service), headers=headers, tablefmt="simple"))
    return 0


def cmd_status(service, args):
    """Show every tracked document of one vehicle."""
    vehicle = require_vehicle(service, args.vehicle)
    overall, obligations = service.vehicle_status(vehicle.id)

    print(f"Vehicle: {vehicle.name}")
    print(f"Type: {vehicle.vehicle_type}")
    print(f"Overall status: {overall.label}")
    print(f"Documents on file: {len(vehicle.documents)}")
    last = vehicle.last_upload
    if last:
        print(f"Last upload: {last.label} on {last.uploaded_at[:10]}")
    print()

    if not obligations:
        print("No documents uploaded.")
        return 0

    obligations = sorted(obligations, key=lambda o: (o.status.value, o.label))
    headers = ["Document", "Status", "Reference", "Start", "Expiry", "Remaining"]
    print(tabulate(make_status_table(obligations), headers=headers, tablefmt="simple"))

    if args.history:
        print()
        print("History:")
        headers = ["Document", "Reference", "Start", "Expiry", "Uploaded", "File"]
        print(tabulate(make_history_table(vehicle), headers=headers, tablefmt="simple"))
    return 0


def cmd_add_vehicle(service, args):
    vehicle = service.create_vehicle(args.user, args.registration, args.make, args.model, args.type)
    print(f"Added {vehicle.name} [{vehicle.id}]")
    return 0


def cmd_update_vehicle(service, args):
    vehicle = require_vehicle(service, args.vehicle)
    updated = service.update_vehicle(
        args.user,
        vehicle.id,
        registration_number=args.registration,
        make=args.make,
        model=args.model,
        vehicle_type=args.type,
    )
    print(f"Updated {updated.name}")
    return 0


def cmd_delete_vehicle(service, args):
    vehicle = require_vehicle(service, args.vehicle)
    if args.dry_run:
        print(f"Would delete {vehicle.name} with {len(vehicle.documents)} documents")
        print("(dry run - no changes made)")
        return 0
    service.delete_vehicle(args.user, vehicle.id)
    print(f"Deleted {vehicle.name}")
    return 0


def cmd_upload(service, args):
    """Record a new document for a vehicle."""
    vehicle = require_vehicle(service, args.vehicle)

    print(f"Adding document to {vehicle.name}:")
    print(f"  Kind:      {args.custom_name or args.kind}")
    print(f"  Reference: {args.reference or '-'}")
    print(f"  Start:     {args.start or '-'}")
    print(f"  Expiry:    {args.expiry or '-'}")
    print()

    if args.dry_run:
        print("(dry run - no changes made)")
        return 0

    doc = service.upload_document(
        args.user,
        vehicle.id,
        args.kind,
        expiry_date=args.expiry,
        custom_type_name=args.custom_name,
        reference_number=args.reference,
        start_date=args.start,
        document_name=args.file_name,
    )
    print(f"Document saved [{doc.id}].")
    return 0


def cmd_alerts(service, args):
    alerts = service.list_alerts(args.user, only_unread=args.unread)
    if not alerts:
        print("No alerts.")
        return 0
    headers = ["Id", "Due", "State", "Message"]
    print(tabulate(make_alert_table(alerts), headers=headers, tablefmt="simple"))
    return 0


def cmd_read_alert(service, args):
    service.mark_alert_read(args.user, args.alert_id)
    print("Alert marked as read.")
    return 0


def cmd_sync(service, args):
    result = service.synchronize_fleet(args.user)
    print(f"Synchronized {len(result.alerts)} vehicle(s), {result.unread_count} unread alert(s).")
    for vehicle_id, error in result.failures.items():
        print(f"  FAILED {vehicle_id}: {error}")
    return 0 if result.ok else 1


def cmd_summary(service, args):
    summary = service.summary()
    for line in make_summary_lines(summary):
        print(line)
    print()
    rows = [
        [kind.value, summary.per_kind_expiring[kind], summary.per_kind_overdue[kind]]
        for kind in DocumentKind
    ]
    print(tabulate(rows, headers=["Document", "Expiring", "Overdue"], tablefmt="simple"))
    return 0


def cmd_report(service, args):
    """Expiring documents report, optionally exported to CSV."""
    statuses = parse_statuses(args.status)
    kinds = parse_kinds(args.kind)

    if args.csv:
        try:
            with open(args.csv, "w", newline="") as fp:
                rows = service.export_expiring_report(args.user, fp, statuses, kinds)
        except OSError as e:
            print(f"Error: could not write {args.csv}: {e}")
            return 1
        print(f"Exported {len(rows)} row(s) to {args.csv}")
        return 0

    rows = service.expiring_report(args.user, statuses=statuses, kinds=kinds)
    if not rows:
        print("No documents match.")
        return 0
    headers = ["Registration", "Document", "Reference", "Expiry", "Status", "Remaining"]
    print(tabulate(make_report_table(rows), headers=headers, tablefmt="simple"))
    return 0


def cmd_audit(service, args):
    audit_filter = AuditFilter(
        user_id=args.by,
        entity_type=EntityType(args.entity) if args.entity else None,
        action=AuditAction(args.action) if args.action else None,
        date_from=args.since,
        date_to=args.until,
    )
    entries = service.list_audit_entries(audit_filter)
    if not entries:
        print("No audit entries found.")
        return 0
    headers = ["Timestamp", "User", "Action", "Entity", "Target"]
    print(tabulate(make_audit_table(entries), headers=headers, tablefmt="simple"))
    return 0


def cmd_seed(service, args):
    vehicles = service.seed_demo_fleet(args.user, seed=args.seed)
    print(f"Seeded {len(vehicles)} vehicle(s).")
    return 0


COMMANDS = {
    "vehicles": cmd_vehicles,
    "status": cmd_status,
    "add-vehicle": cmd_add_vehicle,
    "update-vehicle": cmd_update_vehicle,
    "delete-vehicle": cmd_delete_vehicle,
    "upload": cmd_upload,
    "alerts": cmd_alerts,
    "read-alert": cmd_read_alert,
    "sync": cmd_sync,
    "summary": cmd_summary,
    "report": cmd_report,
    "audit": cmd_audit,
    "seed": cmd_seed,
}


# =============================================================================
# Main
# =============================================================================


def default_user() -> str:
    """$FLEET_USER, else the login name, else "unknown"."""
    user = os.environ.get("FLEET_USER")
    if user:
        return user
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fleet document compliance tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s add-vehicle MH12AB1234 Toyota Camry --type Car
  %(prog)s upload MH12AB1234 Insurance --expiry 2026-03-31 --reference POL-778
  %(prog)s upload MH12AB1234 Other --custom-name "Goods permit" --expiry 2026-01-15
  %(prog)s status MH12AB1234
  %(prog)s alerts --unread
  %(prog)s report --status overdue --status expiring_soon --csv expiring.csv
  %(prog)s audit --since 2025-01-01 --action UPLOAD_DOCUMENT
""",
    )
    parser.add_argument("--config", type=Path, help="Path to a YAML config file")
    parser.add_argument("--data-dir", type=Path, help="Data directory (overrides config)")
    parser.add_argument(
        "--user",
        default=None,
        help="Acting user id (default: $FLEET_USER or login name)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("vehicles", help="List vehicles with their overall status")

    status_parser = subparsers.add_parser("status", help="Show a vehicle's documents")
    status_parser.add_argument("vehicle", help="Vehicle id or registration number")
    status_parser.add_argument("--history", action="store_true", help="Also list every uploaded document")

    add_parser = subparsers.add_parser("add-vehicle", help="Register a vehicle")
    add_parser.add_argument("registration", help="Registration number")
    add_parser.add_argument("make")
    add_parser.add_argument("model")
    add_parser.add_argument("--type", default="Car", help=f"Vehicle type (suggested: {', '.join(VEHICLE_TYPES)})")

    update_parser = subparsers.add_parser("update-vehicle", help="Edit a vehicle")
    update_parser.add_argument("vehicle", help="Vehicle id or registration number")
    update_parser.add_argument("--registration", help="New registration number")
    update_parser.add_argument("--make")
    update_parser.add_argument("--model")
    update_parser.add_argument("--type")

    delete_parser = subparsers.add_parser("delete-vehicle", help="Delete a vehicle")
    delete_parser.add_argument("vehicle", help="Vehicle id or registration number")
    delete_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would be deleted without deleting"
    )

    upload_parser = subparsers.add_parser("upload", help="Record a new document")
    upload_parser.add_argument("vehicle", help="Vehicle id or registration number")
    upload_parser.add_argument("kind", choices=[k.value for k in DocumentKind])
    upload_parser.add_argument("--expiry", help="Expiry date in YYYY-MM-DD format")
    upload_parser.add_argument("--start", help="Start date in YYYY-MM-DD format")
    upload_parser.add_argument("--reference", help="Policy or certificate number")
    upload_parser.add_argument("--custom-name", help="Document name (required for Other)")
    upload_parser.add_argument("--file-name", help="Name of the scanned file")
    upload_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would be added without saving"
    )

    alerts_parser = subparsers.add_parser("alerts", help="List your alerts")
    alerts_parser.add_argument("--unread", action="store_true", help="Only unread alerts")

    read_parser = subparsers.add_parser("read-alert", help="Mark an alert as read")
    read_parser.add_argument("alert_id")

    subparsers.add_parser("sync", help="Resynchronize alerts for every vehicle")
    subparsers.add_parser("summary", help="Fleet dashboard counters")

    report_parser = subparsers.add_parser("report", help="Expiring documents report")
    report_parser.add_argument(
        "--status",
        action="append",
        choices=[s.name.lower() for s in DocumentStatus],
        help="Filter by status (repeatable)",
    )
    report_parser.add_argument(
        "--kind",
        action="append",
        choices=[k.value for k in DocumentKind],
        help="Filter by document kind (repeatable)",
    )
    report_parser.add_argument("--csv", type=Path, help="Export to a CSV file")

    audit_parser = subparsers.add_parser("audit", help="Browse the audit trail")
    audit_parser.add_argument("--by", help="Only entries by this user")
    audit_parser.add_argument("--entity", choices=[e.value for e in EntityType])
    audit_parser.add_argument("--action", choices=[a.value for a in AuditAction])
    audit_parser.add_argument("--since", help="From date (YYYY-MM-DD)")
    audit_parser.add_argument("--until", help="To date (YYYY-MM-DD)")

    seed_parser = subparsers.add_parser("seed", help="Load a demo fleet")
    seed_parser.add_argument("--seed", type=int, default=0, help="Random seed")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.user:
        args.user = default_user()

    try:
        settings = load_settings(args.config)
        if args.data_dir:
            settings.data_dir = args.data_dir
        configure_logging(settings.log_level, settings.log_file)
        service = ComplianceService.from_settings(settings)
        return COMMANDS[args.command](service, args)
    except ComplianceError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
