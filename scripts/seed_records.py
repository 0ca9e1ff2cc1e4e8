#!/usr/bin/env python3
"""Load certification rows from a JSON file into the configured store.

The file holds a list of objects keyed by storage column name
(``employee_number``, ``tier``, ``assigned_date``, ``standing_video`` ...).
"""
from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from certtrack.models import CertificationRecord
from certtrack.service import create_service_from_env


def load_rows(path: Path) -> list[CertificationRecord]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("seed file must contain a JSON list")
    return [CertificationRecord.from_row({"employee_id": 0, **row}) for row in payload]


def main() -> int:
    parser = argparse.ArgumentParser(description="Insert certification rows from a JSON seed file")
    parser.add_argument("seed_file", help="path to the JSON seed file")
    parser.add_argument("--advisor", action="append", default=[], help="advisor as 'First Last'; repeatable")
    args = parser.parse_args()

    advisors = [name.strip().partition(" ") for name in args.advisor]
    if any(not first or not last.strip() for first, _, last in advisors):
        parser.error("--advisor needs a first and last name")
    rows = load_rows(Path(args.seed_file))
    service = create_service_from_env()
    try:
        for first, _, last in advisors:
            service.advisors.add(first_name=first, last_name=last.strip())
        inserted = [service.records.insert(record=row) for row in rows]
        summary = {
            "store_backend": service.settings.store_backend,
            "inserted": len(inserted),
            "advisors": len(args.advisor),
        }
    finally:
        service.close()
    print(json.dumps(summary, ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
