"""Command-line interface for the invoice builder."""

from __future__ import annotations

import argparse
import sys

from .logger import setup_logger
from .runner import run_catalog_import, run_catalog_report, run_render_draft


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Offline invoice builder: catalog sync and draft rendering"
    )
    parser.add_argument("--data-dir", help="Directory holding the saved records")
    parser.add_argument("--log-dir", help="Optional directory for rotating log files")
    commands = parser.add_subparsers(dest="command", required=True)

    catalog = commands.add_parser("catalog", help="Sync the product catalog")
    catalog.add_argument("--output", help="Optional JSON output path")

    importer = commands.add_parser("import-catalog", help="Import products from Excel")
    importer.add_argument(
        "--workbook",
        required=True,
        help="Excel workbook containing the products worksheet",
    )

    render = commands.add_parser("render", help="Render the current draft to PDF")
    render.add_argument("--output", required=True, help="PDF output path")

    args = parser.parse_args(argv)
    setup_logger(args.log_dir)

    if args.command == "catalog":
        path = run_catalog_report(args.data_dir, output_path=args.output)
        print(f"Report written to {path}")
    elif args.command == "import-catalog":
        added = run_catalog_import(args.workbook, args.data_dir)
        print(f"Imported {added} products")
    else:
        try:
            path = run_render_draft(args.output, args.data_dir)
        except RuntimeError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print(f"Draft written to {path}")
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
