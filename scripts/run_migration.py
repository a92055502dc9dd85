#!/usr/bin/env python3
"""
Run the migration engine against a SQL store: detect, import, export, backup, restore.

State (batches, issues, mappings, export jobs) and target collections live in
one database given by --db-url (SQLite by default).  Tables are created on
first use.

Usage:
    python3 scripts/run_migration.py <command> [options]

Examples:
    # Sniff a file: format, delimiter, headers, likely collection
    python3 scripts/run_migration.py detect --file invoices.csv

    # Import with auto-matched mappings; stop after preview
    python3 scripts/run_migration.py import --file invoices.csv --collection invoices \\
        --target-fields invoiceNumber,customer,amount,date --required invoiceNumber

    # Same, and commit (overwrite rows whose invoiceNumber already exists)
    python3 scripts/run_migration.py import --file invoices.csv --collection invoices \\
        --target-fields invoiceNumber,customer,amount,date \\
        --merge-strategy overwrite --key invoiceNumber --commit

    # Export a collection as CSV with two columns
    python3 scripts/run_migration.py export --collection invoices --format csv \\
        --columns invoiceNumber,amount --out invoices_out.csv

    # Full backup / restore
    python3 scripts/run_migration.py backup --out backup.json
    python3 scripts/run_migration.py restore --file backup.json --merge
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///migration.db"


def _csv_list(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Migration engine: detect -> import -> [commit], export, backup, restore.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db-url",
        default=DB_URL,
        help=f"Database URL (default: {DB_URL!r}).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Structured log level written to stderr (default: WARNING).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    detect = sub.add_parser("detect", help="Detect format, delimiter, headers and collection.")
    detect.add_argument("--file", required=True, type=Path)

    imp = sub.add_parser("import", help="Create, upload, map, validate and preview a batch.")
    imp.add_argument("--file", required=True, type=Path)
    imp.add_argument("--collection", required=True, help="Target collection name.")
    imp.add_argument("--format", default=None, help="Source format (default: detected).")
    imp.add_argument(
        "--target-fields",
        type=_csv_list,
        default=None,
        help="Comma-separated target fields to auto-match against (default: pass through).",
    )
    imp.add_argument("--required", type=_csv_list, default=[], help="Fields that must be non-empty.")
    imp.add_argument("--merge-strategy", default="append", choices=["skip", "overwrite", "append", "manual"])
    imp.add_argument("--key", type=_csv_list, default=[], help="Composite key fields.")
    imp.add_argument("--delimiter", default=None)
    imp.add_argument("--widths", type=lambda s: [int(w) for w in _csv_list(s)], default=None,
                     help="Column widths for fixed-width sources.")
    imp.add_argument("--name", default=None, help="Batch name (default: file name).")
    imp.add_argument("--commit", action="store_true", help="Commit after preview.")

    exp = sub.add_parser("export", help="Export one collection.")
    exp.add_argument("--collection", required=True)
    exp.add_argument("--format", default="csv", choices=["csv", "tsv", "json", "pdf", "api"])
    exp.add_argument("--columns", type=_csv_list, default=None)
    exp.add_argument("--date-from", default=None)
    exp.add_argument("--date-to", default=None)
    exp.add_argument("--delimiter", default=",")
    exp.add_argument("--page", type=int, default=1)
    exp.add_argument("--out", type=Path, default=None, help="Output file (default: stdout).")

    backup = sub.add_parser("backup", help="Write every collection into one backup bundle.")
    backup.add_argument("--collections", type=_csv_list, default=None)
    backup.add_argument("--out", type=Path, default=None)

    restore = sub.add_parser("restore", help="Restore a backup bundle.")
    restore.add_argument("--file", required=True, type=Path)
    restore.add_argument("--merge", action="store_true", help="Upsert by id instead of replacing.")

    return parser.parse_args(argv)


def _write(text: str, out: Path | None) -> None:
    if out is None:
        print(text)
    else:
        out.write_text(text, encoding="utf-8")
        print(f"Wrote {len(text.encode('utf-8'))} bytes to {out}")


def _run_detect(args: argparse.Namespace, engine) -> int:
    content = args.file.read_text(encoding="utf-8")
    result = engine.imports.detect_format(content, args.file.name)
    print(json.dumps({
        "format": result.format.value,
        "confidence": result.confidence,
        "delimiter": result.delimiter,
        "headers": list(result.headers),
        "detectedCollection": result.detected_collection,
    }, indent=2))
    return 0


def _run_import(args: argparse.Namespace, engine) -> int:
    from finance_migration.domain.types import RuleKind, ValidationRule

    imports = engine.imports
    content = args.file.read_text(encoding="utf-8")
    detected = imports.detect_format(content, args.file.name)
    source_format = args.format or detected.format.value

    batch = imports.create_batch(
        name=args.name or args.file.name,
        source_format=source_format,
        collection=args.collection,
        merge_strategy=args.merge_strategy,
        composite_keys=args.key,
        delimiter=args.delimiter or detected.delimiter,
    )
    print(f"Created batch {batch.batch_id} ({source_format} -> {args.collection})")

    batch = imports.upload(batch.batch_id, content, column_widths=args.widths)
    print(f"  Uploaded {batch.total_rows} rows")

    if args.target_fields:
        headers = batch.raw_rows[0].field_names() if batch.raw_rows else ()
        matches = imports.auto_match_fields(headers, args.target_fields, source_format)
        imports.save_field_mappings(batch.batch_id, matches)
        for m in matches:
            target = m.target_field or "(unmapped)"
            print(f"  {m.source_field} -> {target} ({m.confidence:.2f}, {m.transform.value})")

    rules = [ValidationRule(field=f, kind=RuleKind.REQUIRED) for f in args.required]
    summary = imports.validate(batch.batch_id, rules)
    print(f"  Validation: errors={summary.error_count} warnings={summary.warning_count}")
    for issue in imports.get_import_errors(batch.batch_id)[:10]:
        print(f"    Row {issue.row_number} [{issue.severity.value}] {issue.message}")

    preview = imports.preview(batch.batch_id)
    print(
        f"  Preview: add={preview.to_add} update={preview.to_update} "
        f"skip={preview.to_skip} conflicts={preview.conflicts}"
    )

    if not args.commit:
        print("Skipping commit (pass --commit to apply).")
        return 0

    committed = imports.commit(batch.batch_id)
    print(
        f"  Commit: status={committed.status.value} imported={committed.imported_rows} "
        f"skipped={committed.skipped_rows} errors={committed.error_rows}"
    )
    return 0 if committed.imported_rows or not committed.error_rows else 2


def _run_export(args: argparse.Namespace, engine) -> int:
    filters = {"dateFrom": args.date_from, "dateTo": args.date_to}
    result = engine.exports.export_collection(
        args.collection,
        args.format,
        filters=filters,
        columns=args.columns,
        delimiter=args.delimiter,
        page=args.page,
    )
    _write(result.data, args.out)
    return 0


def _run_backup(args: argparse.Namespace, engine) -> int:
    bundle = engine.exports.export_all(args.collections)
    _write(json.dumps(bundle, indent=2, default=str), args.out)
    return 0


def _run_restore(args: argparse.Namespace, engine) -> int:
    bundle = json.loads(args.file.read_text(encoding="utf-8"))
    result = engine.exports.import_all(bundle, merge=args.merge)
    print(f"Restored {result.total_records} records into {result.collections_restored} collections")
    return 0


_COMMANDS = {
    "detect": _run_detect,
    "import": _run_import,
    "export": _run_export,
    "backup": _run_backup,
    "restore": _run_restore,
}


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    source = getattr(args, "file", None)
    if source is not None and not source.is_file():
        print(f"ERROR: File not found: {source}", file=sys.stderr)
        return 1

    # Lazy imports so we fail fast on args first
    from finance_migration.domain.clock import SystemClock
    from finance_migration.events import LoggingEventSink
    from finance_migration.exceptions import MigrationError
    from finance_migration.logging_config import configure_logging
    from finance_migration.services import build_engine
    from finance_migration.store.engine import (
        create_store_engine,
        make_session_factory,
        session_scope,
    )
    from finance_migration.store.sql import (
        SqlCollectionRegistry,
        SqlMigrationRepository,
        create_store_tables,
    )

    configure_logging(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    try:
        db_engine = create_store_engine(args.db_url)
        create_store_tables(db_engine)
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    extra_names = [args.collection] if getattr(args, "collection", None) else []
    clock = SystemClock()
    try:
        with session_scope(make_session_factory(db_engine)) as session:
            engine = build_engine(
                SqlCollectionRegistry(session, names=extra_names, clock=clock),
                repository=SqlMigrationRepository(session),
                events=LoggingEventSink(),
                clock=clock,
            )
            return _COMMANDS[args.command](args, engine)
    except MigrationError as e:
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
