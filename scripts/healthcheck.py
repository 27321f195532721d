#!/usr/bin/env python3
"""Opsdesk Health Check — verify the API and its scheduled work are healthy.

Checks:
  1. Backend API responds on /api/v1/health (HTTP 200, valid JSON)
  2. Latest Odoo sync run is not stuck or failing (needs an API token)
  3. SSL certificate valid and not expiring soon

Usage:
    python scripts/healthcheck.py --url http://localhost:8000 --skip-ssl
    python scripts/healthcheck.py --url https://ops.example.com --token $OPSDESK_API_TOKEN
    python scripts/healthcheck.py --json                   # machine-readable output

Exit codes:
    0 = all checks passed
    1 = one or more checks failed
"""

from __future__ import annotations

import argparse
import json
import os
import socket
import ssl
import sys
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

import requests

# ══════════════════════════════════════════════════════════════════════
# Check result model
# ══════════════════════════════════════════════════════════════════════


class CheckResult:
    """Single health check result."""

    def __init__(self, name: str, passed: bool, message: str,
                 detail: str = "", severity: str = "error"):
        self.name = name
        self.passed = passed
        self.message = message
        self.detail = detail
        self.severity = severity  # "error", "warning", "info"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
            "detail": self.detail,
            "severity": self.severity,
        }

    def __str__(self) -> str:
        icon = "✅" if self.passed else ("⚠️" if self.severity == "warning" else "❌")
        s = f"{icon} {self.name}: {self.message}"
        if self.detail:
            s += f"\n     {self.detail}"
        return s


# ══════════════════════════════════════════════════════════════════════
# Health checks
# ══════════════════════════════════════════════════════════════════════

def check_backend_health(base_url: str, timeout: int = 10) -> CheckResult:
    """Check that the backend API /api/v1/health responds correctly."""
    health_url = f"{base_url.rstrip('/')}/api/v1/health"
    try:
        resp = requests.get(health_url, timeout=timeout)
        if resp.status_code != 200:
            return CheckResult(
                "Backend API", False,
                f"HTTP {resp.status_code} (expected 200)",
                f"URL: {health_url}",
            )

        body = resp.json()
        if body.get("status") != "healthy":
            return CheckResult(
                "Backend API", False,
                f"Status: {body.get('status', 'missing')} (expected 'healthy')",
                f"Response: {json.dumps(body)}",
            )

        version = body.get("version", "unknown")
        env = body.get("environment", "unknown")
        return CheckResult(
            "Backend API", True,
            f"Healthy (v{version}, {env})",
            f"URL: {health_url}",
        )
    except requests.exceptions.SSLError as e:
        return CheckResult("Backend API", False, "SSL error connecting to backend", str(e))
    except requests.exceptions.ConnectionError as e:
        return CheckResult("Backend API", False, "Cannot connect to backend", str(e))
    except (requests.RequestException, ValueError) as e:
        return CheckResult(
            "Backend API", False,
            f"Health check failed: {type(e).__name__}",
            str(e),
        )


def check_latest_sync_run(base_url: str, token: str, timeout: int = 10,
                          stale_hours: int = 36) -> CheckResult:
    """Inspect the most recent Odoo sync run."""
    if not token:
        return CheckResult(
            "Odoo Sync", True,
            "Skipped (no API token)",
            "Pass --token or set OPSDESK_API_TOKEN.",
            severity="info",
        )

    url = f"{base_url.rstrip('/')}/api/v1/odoo-sync/runs"
    try:
        resp = requests.get(
            url,
            params={"limit": 1},
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )
    except requests.RequestException as e:
        return CheckResult("Odoo Sync", False, "Cannot query sync runs", str(e))

    if resp.status_code in (401, 403):
        return CheckResult(
            "Odoo Sync", False,
            f"HTTP {resp.status_code}: token lacks odoo_sync access",
        )
    if resp.status_code != 200:
        return CheckResult("Odoo Sync", False, f"HTTP {resp.status_code}", resp.text[:200])

    runs = resp.json()
    if not runs:
        return CheckResult("Odoo Sync", True, "No sync runs yet", severity="warning")

    run = runs[0]
    started = datetime.fromisoformat(run["start_time"])
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    age = datetime.now(timezone.utc) - started
    summary = (
        f"{run['status']} {run['from_date']}..{run['to_date']}: "
        f"{run['successful_orders']} ok, {run['failed_orders']} failed"
    )

    if run["status"] == "running" and age > timedelta(hours=6):
        return CheckResult("Odoo Sync", False, "Latest run looks stuck", summary)
    if age > timedelta(hours=stale_hours):
        return CheckResult(
            "Odoo Sync", True,
            f"Last run started {age.days}d {age.seconds // 3600}h ago",
            summary,
            severity="warning",
        )
    if run["failed_orders"]:
        return CheckResult("Odoo Sync", True, "Latest run has failed orders", summary,
                           severity="warning")
    return CheckResult("Odoo Sync", True, "Latest run healthy", summary)


def check_ssl_certificate(hostname: str, port: int = 443,
                          warn_days: int = 14) -> CheckResult:
    """Check SSL certificate validity and expiry."""
    try:
        ctx = ssl.create_default_context()
        with socket.create_connection((hostname, port), timeout=10) as sock:
            with ctx.wrap_socket(sock, server_hostname=hostname) as ssock:
                cert = ssock.getpeercert()
    except ssl.SSLCertVerificationError as e:
        return CheckResult("SSL Certificate", False, "Certificate verification failed", str(e))
    except socket.timeout:
        return CheckResult(
            "SSL Certificate", False,
            f"Connection timeout to {hostname}:{port}",
        )
    except OSError as e:
        return CheckResult(
            "SSL Certificate", False,
            f"SSL check failed: {type(e).__name__}",
            str(e),
        )

    not_after = cert.get("notAfter", "")
    if not not_after:
        return CheckResult("SSL Certificate", False, "Cannot read certificate expiry")

    # Format: 'Mar 15 12:00:00 2025 GMT'
    expiry = datetime.strptime(not_after, "%b %d %H:%M:%S %Y %Z").replace(tzinfo=timezone.utc)
    days_left = (expiry - datetime.now(timezone.utc)).days
    issuer = dict(x[0] for x in cert.get("issuer", []))
    detail = f"Issuer: {issuer.get('commonName', 'unknown')}, Expires: {not_after}"

    if days_left < 0:
        return CheckResult("SSL Certificate", False, f"EXPIRED {abs(days_left)} days ago!", detail)
    if days_left < warn_days:
        return CheckResult(
            "SSL Certificate", True,
            f"Expiring soon: {days_left} days left",
            detail,
            severity="warning",
        )
    return CheckResult("SSL Certificate", True, f"Valid ({days_left} days until expiry)", detail)


# ══════════════════════════════════════════════════════════════════════
# Runner
# ══════════════════════════════════════════════════════════════════════

def run_healthcheck(url: str, token: str = "", skip_ssl: bool = False,
                    timeout: int = 10) -> list[CheckResult]:
    """Run all health checks and return results."""
    parsed = urlparse(url)
    results = [
        check_backend_health(url, timeout),
        check_latest_sync_run(url, token, timeout),
    ]
    if skip_ssl:
        results.append(CheckResult("SSL Certificate", True, "Skipped (--skip-ssl)", severity="info"))
    elif parsed.scheme == "https":
        results.append(check_ssl_certificate(parsed.hostname))
    return results


def main():
    parser = argparse.ArgumentParser(description="Opsdesk Health Check")
    parser.add_argument("--url", default=os.environ.get("OPSDESK_API_URL", "http://localhost:8000"),
                        help="Base URL to check")
    parser.add_argument("--token", default=os.environ.get("OPSDESK_API_TOKEN", ""),
                        help="Bearer token for authenticated checks")
    parser.add_argument("--skip-ssl", action="store_true", help="Skip SSL certificate check")
    parser.add_argument("--json", dest="output_json", action="store_true",
                        help="Output results as JSON")
    parser.add_argument("--timeout", type=int, default=10,
                        help="HTTP timeout in seconds (default: 10)")
    args = parser.parse_args()

    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    results = run_healthcheck(args.url, args.token, args.skip_ssl, args.timeout)

    if args.output_json:
        print(json.dumps({
            "timestamp": now,
            "target": args.url,
            "checks": [r.to_dict() for r in results],
            "all_passed": all(r.passed for r in results),
        }, indent=2))
    else:
        print(f"{'=' * 60}\n  OPSDESK — HEALTH CHECK\n  Target : {args.url}\n  Time   : {now}\n{'=' * 60}\n")
        for result in results:
            print(result)
            print()
        failed = sum(1 for r in results if not r.passed)
        print(f"{'=' * 60}")
        print(f"  ✅ ALL {len(results)} CHECKS PASSED" if not failed
              else f"  ❌ {failed}/{len(results)} CHECKS FAILED")
        print(f"{'=' * 60}")

    sys.exit(1 if any(not r.passed for r in results) else 0)


if __name__ == "__main__":
    main()
