#!/usr/bin/env python3
"""Daily Odoo sync — scheduled cron wrapper around the sync-run API.

Starts one run per day for yesterday's sales (or each day of a given range),
polls each run until it leaves the ``running`` state and reports the totals.
Starts are spaced to stay under the start endpoint's rate limit.

    15 2 * * *   python scripts/daily_odoo_sync.py

Usage:
    python scripts/daily_odoo_sync.py                          # yesterday, per-order mode
    python scripts/daily_odoo_sync.py --mode aggregated
    python scripts/daily_odoo_sync.py --from 2026-10-01 --to 2026-10-07
    python scripts/daily_odoo_sync.py --no-wait                # start and exit

Requires .env at project root:
    OPSDESK_API_URL    (default http://localhost:8000)
    OPSDESK_API_TOKEN  access token of a user with the odoo_sync page

Exit codes:
    0 = every run finished with no failed orders (days without sales count as done)
    1 = a run finished with failures, was paused/cancelled, or timed out
    2 = a run could not be started
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from datetime import date, timedelta
from pathlib import Path

import requests
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(PROJECT_ROOT / ".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("daily_odoo_sync")

API_PREFIX = "/api/v1/odoo-sync"
START_INTERVAL_SECONDS = 13


class SyncApi:
    """Thin client for the sync-run endpoints."""

    def __init__(self, base_url: str, token: str, timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}{path}"

    def start(self, from_date: date, to_date: date, mode: str) -> dict:
        resp = self.session.post(
            self._url("/runs"),
            json={
                "from_date": from_date.isoformat(),
                "to_date": to_date.isoformat(),
                "mode": mode,
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def get(self, run_id: str) -> dict:
        resp = self.session.get(self._url(f"/runs/{run_id}"), timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def failed_details(self, run_id: str) -> list[dict]:
        resp = self.session.get(
            self._url(f"/runs/{run_id}/details"),
            params={"sync_status": "failed"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()


def wait_for_run(api: SyncApi, run_id: str, poll_seconds: int, max_minutes: int) -> dict | None:
    """Poll until the run is no longer running; None on timeout."""
    deadline = time.monotonic() + max_minutes * 60
    last_progress = -1
    while time.monotonic() < deadline:
        run = api.get(run_id)
        if run["progress"] != last_progress:
            logger.info(
                "Run %s: %d%% (%d ok, %d failed, %d skipped of %d)",
                run_id, run["progress"], run["successful_orders"],
                run["failed_orders"], run["skipped_orders"], run["total_orders"],
            )
            last_progress = run["progress"]
        if run["status"] != "running":
            return run
        time.sleep(poll_seconds)
    return None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    yesterday = date.today() - timedelta(days=1)
    parser = argparse.ArgumentParser(description="Start and follow an Odoo sync run")
    parser.add_argument("--from", dest="from_date", type=date.fromisoformat, default=yesterday)
    parser.add_argument("--to", dest="to_date", type=date.fromisoformat, default=None)
    parser.add_argument("--mode", choices=["orders", "aggregated"], default="orders")
    parser.add_argument("--url", default=os.environ.get("OPSDESK_API_URL", "http://localhost:8000"))
    parser.add_argument("--poll", type=int, default=10, help="Seconds between status polls")
    parser.add_argument("--max-minutes", type=int, default=120)
    parser.add_argument("--no-wait", action="store_true", help="Start the run and exit")
    args = parser.parse_args(argv)
    if args.to_date is None:
        args.to_date = args.from_date
    return args


def iter_days(from_date: date, to_date: date):
    day = from_date
    while day <= to_date:
        yield day
        day += timedelta(days=1)


def _no_orders(error: requests.HTTPError) -> bool:
    """The API answers 422 ``{"errors": {"orders": [...]}}`` for a day without sales."""
    resp = error.response
    if resp is None or resp.status_code != 422:
        return False
    try:
        return "orders" in (resp.json().get("errors") or {})
    except ValueError:
        return False


def sync_day(api: SyncApi, day: date, args: argparse.Namespace) -> int:
    """Start and follow the run for one day; returns that day's exit code."""
    try:
        run = api.start(day, day, args.mode)
    except requests.HTTPError as e:
        if _no_orders(e):
            logger.info("%s: nothing to sync", day)
            return 0
        body = e.response.text[:300] if e.response is not None else ""
        logger.error("%s: could not start sync run: %s %s", day, e, body)
        return 2

    run_id = run["id"]
    logger.info(
        "Started run %s for %s (%s mode, %d orders)",
        run_id, day, args.mode, run["total_orders"],
    )
    if args.no_wait:
        return 0

    final = wait_for_run(api, run_id, args.poll, args.max_minutes)
    if final is None:
        logger.error("Run %s still running after %d minutes", run_id, args.max_minutes)
        return 1

    logger.info(
        "Run %s %s: %d ok, %d failed, %d skipped",
        run_id, final["status"], final["successful_orders"],
        final["failed_orders"], final["skipped_orders"],
    )
    if final["failed_orders"]:
        for detail in api.failed_details(run_id):
            logger.warning("  %s: %s", detail["order_number"], detail.get("error_message") or "")
    return 0 if final["status"] == "completed" and not final["failed_orders"] else 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    token = os.environ.get("OPSDESK_API_TOKEN", "")
    if not token:
        logger.error("OPSDESK_API_TOKEN is not set")
        return 2
    if args.to_date < args.from_date:
        logger.error("--to %s is before --from %s", args.to_date, args.from_date)
        return 2

    api = SyncApi(args.url, token)
    worst = 0
    last_start = None
    for day in iter_days(args.from_date, args.to_date):
        # The start endpoint allows 5 runs a minute
        if last_start is not None:
            wait = START_INTERVAL_SECONDS - (time.monotonic() - last_start)
            if wait > 0:
                time.sleep(wait)
        last_start = time.monotonic()
        try:
            code = sync_day(api, day, args)
        except requests.RequestException as e:
            logger.error("Cannot reach %s: %s", args.url, e)
            return 2
        worst = max(worst, code)
    return worst


if __name__ == "__main__":
    sys.exit(main())
