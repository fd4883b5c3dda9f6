"""
Import lanes, vendors and shipment bids from a JSON export.

Usage:
    python scripts/import_records.py export.json           # report, then insert
    python scripts/import_records.py export.json --check   # report only
    python scripts/import_records.py export.json --reset   # drop and recreate tables first

The export is an object with `lanes`, `vendors` and `bids` (or `shipmentBids`)
sections, each either a list of records or a map of id -> record. Malformed
records are reported and skipped; salvageable ones get safe defaults.
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.database import drop_db, get_db_session, init_db  # noqa: E402
from app.services.record_import import apply_import, plan_import  # noqa: E402


async def run(path: Path, check_only: bool, reset: bool) -> int:
    with path.open(encoding="utf-8") as f:
        data = json.load(f)

    report = plan_import(data)

    print("=" * 70)
    print(f"IMPORT CHECK: {path}")
    print("=" * 70)
    print(report.summary())
    for problem in report.problems:
        print(f"  - {problem}")

    if check_only:
        return 0 if report.ok else 1

    if reset:
        print("\nDropping existing tables...")
        await drop_db()
    await init_db()

    async with get_db_session() as db:
        inserted = await apply_import(db, report)

    print(f"\nInserted {inserted['lanes']} lane(s), {inserted['vendors']} vendor(s), {inserted['bids']} bid(s)")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Import lanes, vendors and bids from a JSON export")
    parser.add_argument("export", type=Path, help="Path of the JSON export")
    parser.add_argument("--check", action="store_true", help="Only report problems, write nothing")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables before importing")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(run(args.export, args.check, args.reset)))


if __name__ == "__main__":
    main()
