#!/usr/bin/env python3
"""
Operator CLI over the stock ledger.

Usage:
    python3 scripts/stock_cli.py [--config FILE] [--db-url URL] <command> ...

Commands:
    init-db                       Create the ledger tables.
    decode FILE                   Decode a file of GS1-128 scan lines.
    scan FILE --reason R --batch-key K [--dest LOC] [--source LOC] [--commit]
                                  Prepare (and optionally append) a scan batch;
                                  purchases default to the central warehouse.
    balances [--location L ...] [--as-of YYYY-MM-DD --basis effective|recorded]
    expiry [--location L ...] [--within-days N] [--include-expired] [--limit N]
    usage --basis effective|recorded [--group-by product|location|product_location]
          [--months N] [--top N] [--monthly]
    reorder --basis effective|recorded [--location L] [--months N]
                                  Stock-outs and low stock at the central warehouse.
    warnings [--location L ...]   Negative balances and incomplete exchanges.

Examples:
    python3 scripts/stock_cli.py decode scans.txt
    python3 scripts/stock_cli.py scan scans.txt --reason purchase \\
        --batch-key receipt-2024-05-02 --commit
    python3 scripts/stock_cli.py usage --basis effective --top 5
    python3 scripts/stock_cli.py reorder --basis effective
"""

import argparse
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 80


# =============================================================================
# Formatting helpers
# =============================================================================


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def print_table(columns, rows) -> None:
    """Print dict rows under ``columns`` with widths fitted to the content."""
    cells = [[("" if row[c] is None else str(row[c])) for c in columns] for row in rows]
    widths = [
        max([len(c)] + [len(r[i]) for r in cells]) for i, c in enumerate(columns)
    ]
    print("  ".join(c.ljust(w) for c, w in zip(columns, widths)))
    print("  ".join("-" * w for w in widths))
    for r in cells:
        print("  ".join(v.ljust(w) for v, w in zip(r, widths)))
    print(f"\n  {len(cells)} row(s)")


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}") from None


def read_lines(path: Path) -> str:
    return path.read_text(encoding="utf-8")


# =============================================================================
# Wiring
# =============================================================================


def build_context(args):
    from stock_config import get_active_config
    from stock_kernel.db.engine import get_session_factory, init_engine_from_url
    from stock_kernel.logging_config import set_log_level
    from stock_kernel.selectors.catalog_selector import (
        SqlLocationDirectory,
        SqlProductCatalog,
    )
    from stock_kernel.services.ledger_service import MovementLedger
    from stock_services import InventoryService

    settings = get_active_config(args.config)
    init_engine_from_url(args.db_url or settings.database_url, echo=False)
    set_log_level(settings.log_level)

    factory = get_session_factory()
    catalog = SqlProductCatalog(factory)
    locations = SqlLocationDirectory(factory)
    ledger = MovementLedger(factory, batch_size=settings.query_batch_size)
    inventory = InventoryService.from_settings(settings, ledger, locations, catalog)
    return settings, catalog, ledger, inventory


# =============================================================================
# Commands
# =============================================================================


def cmd_init_db(args) -> int:
    from stock_kernel.db.engine import create_tables

    build_context(args)
    create_tables()
    print("  Tables created.")
    return 0


def cmd_decode(args) -> int:
    from stock_ingestion import BarcodeDecoder

    results = BarcodeDecoder().decode_batch(read_lines(args.file))
    banner(f"DECODE  {args.file}")
    rows = []
    for r in results:
        d = r.decoded
        rows.append(
            {
                "line": r.line_number,
                "unit_code": d.unit_code if d else None,
                "lot": d.lot_number if d else None,
                "expiry": d.expiry_date if d else None,
                "error": f"{r.error_code}: {r.error.detail}" if r.error else None,
            }
        )
    print_table(("line", "unit_code", "lot", "expiry", "error"), rows)
    return 1 if any(not r.ok for r in results) else 0


def cmd_scan(args) -> int:
    from stock_ingestion import ScanImportService
    from stock_kernel.domain.values import LotKey, MovementReason

    settings, catalog, ledger, inventory = build_context(args)
    dest = args.dest
    if dest is None and MovementReason.parse(args.reason) == MovementReason.PURCHASE:
        dest = settings.central_warehouse_id
    # balances at the source are shown only; a shortage never blocks the scan
    available = inventory.available_stock(args.source) if args.source else None

    service = ScanImportService(catalog)
    batch = service.prepare(
        read_lines(args.file),
        dest_location=dest,
        reason=args.reason,
        source_location=args.source,
        effective_date=args.effective_date,
        available=available,
    )

    banner(f"SCAN BATCH  {args.file}  ({args.reason})")
    rows = []
    for m in batch.movements:
        d = m.draft
        lot = LotKey(d.product_ref, d.lot_number, d.expiry_date)
        rows.append(
            {
                "product": d.product_ref,
                "lot": d.lot_number,
                "expiry": d.expiry_date,
                "quantity": d.quantity,
                "source": d.source_location,
                "dest": d.dest_location,
                "available": available.get(lot, 0) if available is not None else None,
            }
        )
    print_table(("product", "lot", "expiry", "quantity", "source", "dest", "available"), rows)
    for line in batch.decode_errors + batch.needs_registration + batch.invalid:
        print(f"  line {line.line_number}: {line.error_code} {line.message}")
    for line in batch.out_of_stock:
        print(f"  line {line.line_number}: OUT_OF_STOCK {line.available} at {args.source}")

    if not args.commit:
        print("\n  Dry run; pass --commit to append.")
        return 0 if batch.is_clean else 1

    result = service.commit(batch, ledger, batch_key=args.batch_key)
    print(f"\n  Appended {result.accepted}, already present {result.duplicates}.")
    return 0 if batch.is_clean else 1


def cmd_balances(args) -> int:
    from stock_engines.reporting import BALANCE_COLUMNS
    from stock_kernel.domain.values import DateBasis

    _, _, _, inventory = build_context(args)
    basis = DateBasis(args.basis) if args.basis else None
    rows = inventory.balance_rows(args.location or None, as_of=args.as_of, basis=basis)
    title = f"as of {args.as_of} ({basis.value})" if args.as_of else "current"
    banner(f"BALANCES  {title}")
    print_table(BALANCE_COLUMNS, [r.as_dict() for r in rows])
    return 0


def cmd_expiry(args) -> int:
    from stock_engines.reporting import BALANCE_COLUMNS

    _, _, _, inventory = build_context(args)
    scheduled = inventory.expiry_schedule(
        args.location or None,
        include_expired=args.include_expired,
        within_days=args.within_days,
        limit=args.limit,
    )
    summary = inventory.expiry_summary(scheduled)
    banner("EXPIRY SCHEDULE")
    print_table(BALANCE_COLUMNS, [r.as_dict() for r in inventory.expiry_rows(scheduled)])
    print(
        f"  expired {summary.expired}  critical {summary.critical}  "
        f"warning {summary.warning}  normal {summary.normal}  "
        f"units {summary.total_quantity}"
    )
    return 0


def cmd_usage(args) -> int:
    from stock_engines.reporting import USAGE_COLUMNS
    from stock_kernel.domain.values import DateBasis, UsageGroupBy

    settings, _, _, inventory = build_context(args)
    basis = DateBasis(args.basis)
    group_by = UsageGroupBy(args.group_by)
    window = inventory.usage_window(args.months)

    if args.monthly:
        usage = inventory.monthly_usage(basis=basis, group_by=group_by, window=window)
        title = "MONTHLY USAGE"
    else:
        report = inventory.usage_report(group_by, basis=basis, window=window)
        top = args.top if args.top is not None else settings.top_n
        usage = replace(report, ranked=report.top(top))
        title = f"TOP {top} USAGE"

    banner(f"{title}  {window.start} .. {window.end} ({basis.value}, by {group_by.value})")
    print_table(USAGE_COLUMNS, [r.as_dict() for r in inventory.usage_rows(usage)])
    return 0


def cmd_reorder(args) -> int:
    from stock_kernel.domain.values import DateBasis

    settings, _, _, inventory = build_context(args)
    basis = DateBasis(args.basis)
    location = args.location or settings.central_warehouse_id
    lines = inventory.reorder_status(location, basis=basis, months=args.months)
    banner(f"REORDER STATUS  {location} ({basis.value})")
    print_table(
        ("product", "quantity", "window_usage", "monthly_average", "status"),
        [
            {
                "product": line.product_ref,
                "quantity": line.quantity,
                "window_usage": line.window_usage,
                "monthly_average": line.monthly_average,
                "status": line.level.value,
            }
            for line in lines
        ],
    )
    flagged = [line for line in lines if line.needs_reorder]
    print(f"  {len(flagged)} product(s) to reorder")
    return 0


def cmd_warnings(args) -> int:
    _, _, _, inventory = build_context(args)
    warnings = inventory.consistency_warnings(args.location or None)
    banner("CONSISTENCY WARNINGS")
    for w in warnings:
        print(f"  [{w.kind.value}] {w.message}")
    print(f"\n  {len(warnings)} warning(s)")
    return 1 if warnings else 0


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Medical-device stock ledger CLI")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings override")
    parser.add_argument("--db-url", default=None, help="Database URL (overrides config)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create the ledger tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("decode", help="Decode a file of scan lines")
    p.add_argument("file", type=Path)
    p.set_defaults(func=cmd_decode)

    p = sub.add_parser("scan", help="Prepare and optionally commit a scan batch")
    p.add_argument("file", type=Path)
    p.add_argument(
        "--dest", default=None, help="Destination location id (purchase default: central warehouse)"
    )
    p.add_argument("--source", default=None, help="Source location id (default: product client)")
    p.add_argument("--reason", required=True)
    p.add_argument("--batch-key", required=True)
    p.add_argument("--effective-date", type=parse_date, default=None)
    p.add_argument("--commit", action="store_true")
    p.set_defaults(func=cmd_scan)

    p = sub.add_parser("balances", help="Lot balances per location")
    p.add_argument("--location", action="append")
    p.add_argument("--as-of", type=parse_date, default=None)
    p.add_argument("--basis", choices=("effective", "recorded"), default=None)
    p.set_defaults(func=cmd_balances)

    p = sub.add_parser("expiry", help="Lots ranked by days until expiry")
    p.add_argument("--location", action="append")
    p.add_argument("--within-days", type=int, default=None)
    p.add_argument("--include-expired", action="store_true")
    p.add_argument("--limit", type=int, default=None)
    p.set_defaults(func=cmd_expiry)

    p = sub.add_parser("usage", help="Usage ranking or monthly buckets")
    p.add_argument("--basis", choices=("effective", "recorded"), required=True)
    p.add_argument(
        "--group-by",
        choices=("product", "location", "product_location"),
        default="product",
    )
    p.add_argument("--months", type=int, default=None)
    p.add_argument("--top", type=int, default=None)
    p.add_argument("--monthly", action="store_true")
    p.set_defaults(func=cmd_usage)

    p = sub.add_parser("reorder", help="Stock-outs and low stock against recent usage")
    p.add_argument("--basis", choices=("effective", "recorded"), required=True)
    p.add_argument("--location", default=None, help="Location id (default: central warehouse)")
    p.add_argument("--months", type=int, default=None)
    p.set_defaults(func=cmd_reorder)

    p = sub.add_parser("warnings", help="Consistency warnings")
    p.add_argument("--location", action="append")
    p.set_defaults(func=cmd_warnings)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "balances" and args.as_of and not args.basis:
        print("  ERROR: --as-of needs --basis effective|recorded", file=sys.stderr)
        return 2

    from stock_kernel.exceptions import StockKernelError

    try:
        return args.func(args)
    except StockKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
