"""
Catalog import from the command line.

Runs the same preview/execute pipeline as the API, in-process.

Usage:
    # Dry run (default): print the plan, write nothing
    python scripts/import_catalog.py --file data/catalog.xlsx

    # Execute with an explicit mapping and mode
    python scripts/import_catalog.py --file data/catalog.csv \
        --mapping '{"product_name": 0, "variant_sku": 1, "variant_color": 2}' \
        --mode update_existing --execute
"""

import argparse
import json
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from exceptions import AppError
from models.catalog_import import ExecutionResult, ImportMode, ImportPlan
from parsers.catalog_file_parser import parse_catalog_file
from services.import_progress_service import LoggingProgressSink
from services.import_service import default_config, get_import_service
from services.mapping_cache_service import suggest_mapping


def print_plan(plan: ImportPlan) -> None:
    c = plan.counts
    print(f"  Valid rows:      {c.valid_rows}")
    print(f"  Error rows:      {c.error_rows}")
    print(f"  Products:        {c.products_to_create} create / {c.products_to_update} update / {c.products_to_skip} skip")
    print(f"  Variants:        {c.variants_to_create} create / {c.variants_to_update} update / {c.variants_to_skip} skip")
    print(f"  Barcodes needed: {plan.barcodes_required}")
    for error in plan.errors[:20]:
        print(f"  ! row {error.row_number}: {error.field}: {error.message}")
    for warning in plan.warnings:
        print(f"  ~ {warning}")


def print_result(result: ExecutionResult) -> None:
    print(f"  Import id: {result.import_id}")
    for key, value in result.stats.items():
        print(f"  {key:<20} {value}")
    for unit in result.failed_units:
        print(f"  ! {unit.parent_key} rows {unit.row_numbers}: {unit.error}")
    print(f"  Duration: {result.duration_seconds:.1f}s")


def main() -> int:
    parser = argparse.ArgumentParser(description="Import a product catalog file")
    parser.add_argument("--file", required=True, help="CSV or Excel file")
    parser.add_argument("--sheet", help="Excel sheet name (first sheet by default)")
    parser.add_argument("--mapping", help="JSON object: field -> column index (guessed from headers if omitted)")
    parser.add_argument("--mode", choices=[m.value for m in ImportMode])
    parser.add_argument("--standard", action="store_true", help="Use the is_parent column instead of inferring parents")
    parser.add_argument("--no-barcodes", action="store_true", help="Do not assign pool barcodes")
    parser.add_argument("--execute", action="store_true", help="Write to the catalog (dry run otherwise)")
    args = parser.parse_args()

    try:
        catalog_file = parse_catalog_file(args.file, sheet=args.sheet)
        mapping = json.loads(args.mapping) if args.mapping else suggest_mapping(catalog_file.headers)
        config = default_config(
            mode=ImportMode(args.mode) if args.mode else None,
            auto_generate_parents=False if args.standard else None,
            assign_barcodes=False if args.no_barcodes else None,
        )

        print(f"File: {catalog_file.filename} ({len(catalog_file.rows)} rows)")
        print(f"Mapping: {json.dumps(mapping)}")
        print(f"Mode: {config.mode.value}  auto parents: {config.auto_generate_parents}")

        service = get_import_service()
        plan = service.dry_run(catalog_file.rows, mapping, config, column_count=catalog_file.column_count)
        print("\nPlan:")
        print_plan(plan)

        if not args.execute:
            print("\nDry run only. Re-run with --execute to apply.")
            return 0

        print("\nExecuting...")
        result = service.run(
            catalog_file.rows,
            mapping,
            config,
            column_count=catalog_file.column_count,
            progress_sink=LoggingProgressSink("cli"),
        )
        print_result(result)
        return 0 if result.success else 2

    except AppError as e:
        print(f"ERROR [{e.code}]: {e.message}")
        if e.details:
            print(json.dumps(e.details, indent=2, default=str))
        return 1


if __name__ == "__main__":
    sys.exit(main())
