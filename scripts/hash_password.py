#!/usr/bin/env python3
from __future__ import annotations

import argparse
import getpass
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from recruit_grid.security import hash_password


def main() -> int:
    parser = argparse.ArgumentParser(description="Produce a GRID_ADMINS entry with a bcrypt password hash")
    parser.add_argument("--email", required=True, help="administrator email")
    parser.add_argument("--name", default="", help="display name; defaults to the email")
    parser.add_argument("--rounds", type=int, default=12, help="bcrypt cost factor")
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    if not password:
        raise SystemExit("password must not be empty")
    if getpass.getpass("Repeat password: ") != password:
        raise SystemExit("passwords do not match")

    entry = {
        "email": args.email.strip().lower(),
        "name": args.name.strip() or args.email.strip(),
        "password_hash": hash_password(password, rounds=args.rounds),
    }
    print(json.dumps(entry, ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
