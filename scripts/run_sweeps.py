#!/usr/bin/env python3
"""
Trigger the lifecycle batch jobs over HTTP (for cron).

Usage:
    python scripts/run_sweeps.py no-show
    python scripts/run_sweeps.py no-show --current-time 2026-10-18T21:00:00+08:00
    python scripts/run_sweeps.py blacklist-check
    python scripts/run_sweeps.py all

Environment Variables:
    SYSTEM_JOB_SECRET: Shared secret sent in the X-System-Secret header
    API_URL: Base API URL (default: http://localhost:8000)
"""

import argparse
import os
import sys

import dotenv
import httpx

dotenv.load_dotenv()

JOBS = {
    "no-show": "auto-update-status",
    "blacklist-check": "blacklist-check",
}


def run_job(job: str, current_time: str | None = None) -> dict:
    """Call one system job endpoint and return its JSON body."""
    secret = os.getenv("SYSTEM_JOB_SECRET")
    if not secret:
        print("Error: SYSTEM_JOB_SECRET environment variable not set", file=sys.stderr)
        sys.exit(1)

    api_url = os.getenv("API_URL", "http://localhost:8000")
    url = f"{api_url}/api/v1/system/{JOBS[job]}"

    payload = {"current_time": current_time} if current_time else None

    try:
        response = httpx.post(
            url,
            json=payload,
            headers={"X-System-Secret": secret},
            timeout=120,
        )
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        print(f"HTTP Error: {e}", file=sys.stderr)
        print(f"Response: {e.response.text}", file=sys.stderr)
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"Request Error: {e}", file=sys.stderr)
        sys.exit(1)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run clinic booking batch jobs")
    parser.add_argument("job", choices=[*JOBS, "all"], help="Job to run")
    parser.add_argument(
        "--current-time",
        type=str,
        help="ISO-8601 reference time for the no-show sweep (default: now)",
    )
    args = parser.parse_args()

    # The no-show sweep feeds the blacklist check, so it runs first
    jobs = list(JOBS) if args.job == "all" else [args.job]
    for job in jobs:
        result = run_job(job, args.current_time if job == "no-show" else None)
        print(f"{job}: processed {result['processed_count']}")


if __name__ == "__main__":
    main()
