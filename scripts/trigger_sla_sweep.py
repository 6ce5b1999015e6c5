#!/usr/bin/env python3
"""
Trigger SLA Escalation Sweep
=============================

Calls POST /jobs/sla-escalation/run for cron runners.

Usage:
    SLA_JOB_SECRET=... python scripts/trigger_sla_sweep.py --base-url https://tickets.example.com

Exit code is 0 on success, 1 when the request fails or the sweep reports
per-ticket errors.
"""

import argparse
import json
import os
import sys

import httpx


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the SLA escalation sweep")
    parser.add_argument(
        "--base-url",
        default=os.environ.get("FRONTDESK_BASE_URL", "http://localhost:8000"),
        help="Service base URL (env: FRONTDESK_BASE_URL)"
    )
    parser.add_argument(
        "--secret",
        default=os.environ.get("SLA_JOB_SECRET"),
        help="Job secret sent as X-Job-Secret (env: SLA_JOB_SECRET)"
    )
    parser.add_argument("--timeout", type=float, default=120.0, help="Request timeout in seconds")
    args = parser.parse_args()

    if not args.secret:
        print("Error: job secret missing (pass --secret or set SLA_JOB_SECRET)", file=sys.stderr)
        return 1

    url = f"{args.base_url.rstrip('/')}/jobs/sla-escalation/run"

    try:
        response = httpx.post(url, headers={"X-Job-Secret": args.secret}, timeout=args.timeout)
    except httpx.HTTPError as e:
        print(f"Error: request to {url} failed: {e}", file=sys.stderr)
        return 1

    if response.status_code != 200:
        print(f"Error: {response.status_code} {response.text}", file=sys.stderr)
        return 1

    result = response.json()
    print(json.dumps(result, indent=2))
    return 1 if result.get("errors") else 0


if __name__ == "__main__":
    sys.exit(main())
