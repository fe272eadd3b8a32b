"""Script to sync the product catalog and write a JSON summary."""

import json
import sys

from invoice_builder.logger import setup_logger
from invoice_builder.runner import run_catalog_report

if __name__ == "__main__":
    # Optional custom data directory, otherwise the default one is used
    data_dir = sys.argv[1] if len(sys.argv) > 1 else None

    setup_logger()
    print("Starting catalog sync\n")

    report_path = run_catalog_report(data_dir)
    with open(report_path, encoding="utf-8") as f:
        payload = json.load(f)

    if payload["status"] != "success":
        print(f"\n Error: {payload['error']}")
        sys.exit(1)

    print("\n=== Summary ===")
    print("Completed successfully!")
    print(f"- Catalog source: {payload['source_id'] or 'not configured'}")
    print(f"- Products from the sheet: {payload['remote_count']}")
    print(f"- Locally entered products: {payload['local_count']}")
    print(f"- Report written to: {report_path}")
