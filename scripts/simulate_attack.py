#!/usr/bin/env python3
"""
AutoBlockIP – synthetic failed-logon feed for testing detection and reconciliation.

Writes a JSON Lines file in the layout read by `feed.source: jsonl`, with the
account name at detail field 5 and the source address at field 19, like an
exported Security log event 4625.

Usage:
  python3 scripts/simulate_attack.py feed.jsonl --address 203.0.113.7 --attempts 6
  autoblockip config set feed.source jsonl
  autoblockip config set feed.path feed.jsonl
  autoblockip scan
  autoblockip run --dry-run
"""
from __future__ import annotations

import argparse
import json
import random
from datetime import datetime, timedelta, timezone

ACCOUNTS = ["administrator", "admin", "user", "test", "guest", "backup"]


def _fields(account: str, address: str) -> list[str]:
    fields = ["-"] * 21
    fields[5] = account
    fields[19] = address
    fields[20] = str(random.randint(1024, 65535))
    return fields


def build_events(address: str, attempts: int, spread_minutes: float, account: str | None) -> list[dict]:
    now = datetime.now(timezone.utc)
    events = []
    for i in range(attempts):
        ts = now - timedelta(minutes=spread_minutes * (attempts - i) / max(attempts, 1))
        events.append({
            "timestamp": ts.isoformat(),
            "event_id": 4625,
            "entry_type": "FailureAudit",
            "fields": _fields(account or random.choice(ACCOUNTS), address),
        })
    return events


def main() -> None:
    ap = argparse.ArgumentParser(description="Write a synthetic failed-logon JSONL feed")
    ap.add_argument("output", help="JSONL file to write (appended)")
    ap.add_argument("--address", default="203.0.113.7", help="Attacking source address")
    ap.add_argument("--attempts", type=int, default=6, help="Number of failed logons")
    ap.add_argument("--spread-minutes", type=float, default=5.0, help="Spread attempts over this many minutes")
    ap.add_argument("--account", help="Target account (random if omitted)")
    args = ap.parse_args()

    events = build_events(args.address, args.attempts, args.spread_minutes, args.account)
    with open(args.output, "a", encoding="utf-8") as f:
        for e in events:
            f.write(json.dumps(e) + "\n")
    print(f"Wrote {len(events)} failed logon(s) from {args.address} to {args.output}")


if __name__ == "__main__":
    main()
