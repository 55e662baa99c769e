#!/usr/bin/env python3
"""
Command line entry point.

    docport detect people.csv
    docport import db.people people.csv --type age=int
    docport export db.people people.jsonl --format jsonl

Runs execute on a worker thread so Ctrl+C cancels them cooperatively.
"""

import argparse
import json
import logging
import sys
import threading
from typing import Callable, List, Optional

from docport.common.logging_config import setup_logging
from docport.common.metrics import get_metrics
from docport.config.settings import get_settings
from docport.errors import DocportError
from docport.ingest.types import CSVField, FileType
from docport.progress import Progress
from docport.session import ExportSession, ImportSession, SessionStatus, SessionSummary
from docport.storage import get_document_store

logger = logging.getLogger("docport.cli")

EXIT_CODES = {
    SessionStatus.COMPLETED: 0,
    SessionStatus.COMPLETED_WITH_ERRORS: 2,
    SessionStatus.FAILED: 1,
    SessionStatus.CANCELED: 130,
}


def _print_progress(progress: Progress) -> None:
    fraction = progress.fraction
    done = f" ({fraction:.0%})" if fraction is not None else ""
    print(
        f"  {progress.docs_written} documents written{done}",
        file=sys.stderr,
    )


def _run_cancellable(run: Callable[[], Optional[SessionSummary]], cancel: Callable[[], bool]):
    """Run on a worker thread; Ctrl+C cancels instead of killing the run."""
    outcome: dict = {}

    def target():
        try:
            outcome["summary"] = run()
        except BaseException as e:  # re-raised on the main thread
            outcome["error"] = e

    worker = threading.Thread(target=target, name="docport-run")
    worker.start()
    while worker.is_alive():
        try:
            worker.join(timeout=0.2)
        except KeyboardInterrupt:
            print("Cancelling...", file=sys.stderr)
            cancel()
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("summary")


def _report(summary: SessionSummary) -> int:
    symbol = "✓" if summary.status == SessionStatus.COMPLETED else "✗"
    print(
        f"{symbol} {summary.status.value}: {summary.docs_written} written, "
        f"{summary.docs_processed} processed in {summary.elapsed_seconds:.1f}s"
    )
    for record in summary.errors:
        print(f"  {record.name}: {record.message}", file=sys.stderr)
    if summary.error_count > len(summary.errors):
        print(f"  ... {summary.error_count - len(summary.errors)} more", file=sys.stderr)
    if summary.error_log_path and summary.error_count:
        print(f"  Full error log: {summary.error_log_path}", file=sys.stderr)
    return EXIT_CODES[summary.status]


def cmd_detect(args) -> int:
    session = ImportSession(get_document_store())
    try:
        session.open("detect.preview")
        descriptor = session.select_file(args.file)
        print(f"type: {descriptor.file_type.value}")
        if descriptor.is_csv:
            print(f"delimiter: {descriptor.delimiter!r}")
            session.wait_for_analysis()
        for field in session.fields:
            if isinstance(field, CSVField):
                print(f"  {field.path}: {field.type.value}")
            else:
                print(f"  {field.path}")
        return 0
    finally:
        session.shutdown()


def _parse_types(values: List[str]) -> List[tuple]:
    pairs = []
    for value in values:
        path, sep, field_type = value.partition("=")
        if not sep:
            raise SystemExit(f"--type expects PATH=TYPE, got {value!r}")
        pairs.append((path, field_type))
    return pairs


def cmd_import(args) -> int:
    session = ImportSession(get_document_store())
    try:
        session.open(args.namespace)
        session.select_file(args.file)
        if args.delimiter:
            session.set_delimiter(args.delimiter)
        if args.skip_analyze:
            session.skip_analyze()
        else:
            session.wait_for_analysis()
        for path, field_type in _parse_types(args.type):
            session.set_field_type(path, field_type)
        for path in args.exclude:
            session.toggle_include_field(path)
        session.set_stop_on_errors(args.stop_on_errors)
        session.set_ignore_blanks(not args.keep_blanks)

        summary = _run_cancellable(
            lambda: session.start(on_progress=_print_progress if args.progress else None),
            session.cancel,
        )
        return _report(summary)
    finally:
        session.shutdown()


def cmd_export(args) -> int:
    session = ExportSession(get_document_store())
    session.open(args.namespace)
    session.set_query(
        filter=json.loads(args.filter) if args.filter else None,
        projection=args.fields.split(",") if args.fields else None,
    )
    summary = _run_cancellable(
        lambda: session.start(
            args.output,
            FileType(args.format),
            delimiter=args.delimiter,
            on_progress=_print_progress if args.progress else None,
        ),
        session.cancel,
    )
    return _report(summary)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docport",
        description="Bulk import and export for document collections",
    )
    parser.add_argument("--log-level", default=None, help="Override DOCPORT_LOG_LEVEL")
    parser.add_argument("--metrics-file", default=None,
                        help="Write Prometheus metrics here when the command ends")
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser("detect", help="Detect the format and field types of a file")
    detect.add_argument("file")
    detect.set_defaults(func=cmd_detect)

    imp = subparsers.add_parser("import", help="Import a CSV, JSON or JSON lines file")
    imp.add_argument("namespace", help="Target database.collection")
    imp.add_argument("file")
    imp.add_argument("--delimiter", choices=[",", "\t", ";", " "])
    imp.add_argument("--type", action="append", default=[], metavar="PATH=TYPE",
                     help="Cast a CSV field, e.g. age=int")
    imp.add_argument("--exclude", action="append", default=[], metavar="PATH")
    imp.add_argument("--stop-on-errors", action="store_true")
    imp.add_argument("--keep-blanks", action="store_true",
                     help="Import blank CSV cells as empty strings")
    imp.add_argument("--skip-analyze", action="store_true",
                     help="Use the types detected so far instead of scanning the whole file")
    imp.add_argument("--progress", action="store_true")
    imp.set_defaults(func=cmd_import)

    exp = subparsers.add_parser("export", help="Export a collection")
    exp.add_argument("namespace", help="Source database.collection")
    exp.add_argument("output")
    exp.add_argument("--format", choices=["json", "jsonl", "csv"], default="json")
    exp.add_argument("--fields", help="Comma separated dotted paths to export")
    exp.add_argument("--filter", help="Equality filter as JSON")
    exp.add_argument("--delimiter", default=",")
    exp.add_argument("--progress", action="store_true")
    exp.set_defaults(func=cmd_export)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level, settings.log_json)

    try:
        return args.func(args)
    except (DocportError, ValueError, KeyError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1
    finally:
        if args.metrics_file:
            with open(args.metrics_file, "wb") as f:
                f.write(get_metrics())


if __name__ == "__main__":
    sys.exit(main())
