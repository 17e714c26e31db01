#!/usr/bin/env python3
"""Run, resume or reconcile a client (or position) rename against the configured backend.

Reads the same GRID_STORE_* / OBJECT_STORAGE_* environment as the API. A
rename that previously stopped half way is resumed from its migration marker.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from recruit_grid.authorization import ROLE_ADMIN, Principal
from recruit_grid.errors import ApiError
from recruit_grid.store import store

OPERATOR = Principal(email="operator@localhost", name="operator", role=ROLE_ADMIN)


def main() -> int:
    parser = argparse.ArgumentParser(description="Rename a client or a position, resuming partial renames")
    parser.add_argument("--client", required=True, help="client to rename (or owning the position)")
    parser.add_argument("--to", required=True, help="new name")
    parser.add_argument("--position", default="", help="rename this position of --client instead of the client")
    parser.add_argument("--verbose", action="store_true", help="log every migration step")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(levelname)s %(message)s")
    try:
        if args.position:
            report = store.rename_position(OPERATOR, client_id=args.client, position=args.position, new_name=args.to)
        else:
            report = store.rename_client(OPERATOR, client_id=args.client, new_name=args.to)
    except ApiError as exc:
        payload = {"ok": False, "code": exc.code, "message": exc.message, "report": exc.details}
        print(json.dumps(payload, ensure_ascii=True, sort_keys=True, indent=2))
        return 1
    finally:
        store.notifier.shutdown()
    print(json.dumps(report.to_dict(), ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
