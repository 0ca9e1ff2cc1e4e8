#!/usr/bin/env python3
"""Create the record, advisor and audit tables for the configured backend."""
from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from certtrack.service import create_service_from_env


def main() -> int:
    parser = argparse.ArgumentParser(description="Create certtrack tables idempotently")
    parser.add_argument("--backend", choices=["sqlite", "postgres"], default=None, help="override CERTTRACK_STORE_BACKEND")
    parser.add_argument("--sqlite-path", default=None, help="override CERTTRACK_SQLITE_PATH")
    args = parser.parse_args()

    env = dict(os.environ)
    if args.backend:
        env["CERTTRACK_STORE_BACKEND"] = args.backend
    if args.sqlite_path:
        env["CERTTRACK_SQLITE_PATH"] = args.sqlite_path

    service = create_service_from_env(env)
    try:
        summary = {
            "store_backend": service.settings.store_backend,
            "audit_backend": service.audit.backend_name,
            "sqlite_path": service.settings.sqlite_path if service.settings.store_backend == "sqlite" else None,
        }
    finally:
        service.close()
    print(json.dumps(summary, ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
