#!/usr/bin/env python3
"""Check the source API connection and print a sample of task records.

Run from api/:  python scripts/check_source_connection.py [--owner 0x...] [--limit 5]
Requires: FIND_LABS_API_BASE_MAINNET (or _TESTNET), FIND_LABS_USERNAME, FIND_LABS_PASSWORD in .env
"""

import argparse
import logging
import os
import sys

_api_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _api_dir)

from dotenv import load_dotenv

load_dotenv(os.path.join(_api_dir, ".env"))

from app.services import scan_config  # noqa: E402
from app.services.chain_builder import build_chains  # noqa: E402
from app.services.scan_errors import ScanError  # noqa: E402
from app.services.source_client import SourceClient  # noqa: E402


def _mask(secret: str) -> str:
    if not secret:
        return "(unset)"
    if len(secret) <= 4:
        return "*" * len(secret)
    return f"{secret[:2]}{'*' * (len(secret) - 4)}{secret[-2:]}"


def main() -> int:
    ap = argparse.ArgumentParser(description="Check source API credentials and pagination")
    ap.add_argument("--owner", help="Owner address to sample (0x + 16 hex chars)")
    ap.add_argument("--limit", type=int, default=5, help="Records to print from the sample")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    username, password = scan_config.source_credentials()
    print(f"Network:  {scan_config.flow_network()}")
    print(f"Base URL: {scan_config.source_base_url() or '(unset)'}")
    print(f"Username: {username or '(unset)'}")
    print(f"Password: {_mask(password)}")

    try:
        client = SourceClient()
    except ScanError as exc:
        print(f"FAIL: {exc}")
        return 1

    if not client.check_connection():
        print("FAIL: source API did not accept the request (see log above)")
        return 1
    print("OK: source API reachable")

    if not args.owner:
        return 0
    if not scan_config.is_valid_owner_address(args.owner):
        print(f"FAIL: invalid owner address {args.owner!r}")
        return 1

    try:
        records = client.fetch_all_task_records(args.owner)
    except ScanError as exc:
        print(f"FAIL: {exc}")
        return 1

    built = build_chains(records)
    print(
        f"Fetched {len(records)} records ({client.quarantined} quarantined): "
        f"{len(built.active)} active agents, {len(built.completed)} completed"
    )
    for record in records[: max(0, args.limit)]:
        print(
            f"  {record.id} status={record.status.value} scheduled_at={record.scheduled_at.isoformat()} "
            f"prev={record.predecessor_ref or '-'} next={record.successor_ref or '-'}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
