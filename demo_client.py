#!/usr/bin/env python
"""Demo client for geoping.

Creates a check session for a URL, fetches it back and prints a per-region
phase breakdown with a proportional timeline.
"""
import argparse
import json
import os
import sys

import requests

GEOPING_URL = "http://127.0.0.1:8001"
DEFAULT_TOKEN = "1"  # Default token allowed by configuration
TOKEN_SECRET = os.getenv("TOKEN_SECRET", "geoping_secret_key_change_in_production")

PHASE_MARKS = {"dns": "d", "connection": "c", "tls": "s", "ttfb": "w", "transfer": "t"}
BAR_WIDTH = 40

def check_service():
    """Check if the service is running."""
    try:
        status = requests.get(f"{GEOPING_URL}/health", timeout=5).json()
        print(f"geoping: {status['status']}")
        print(f"Cache: {status.get('cache', {}).get('backend', 'unknown')} "
              f"({status.get('cache', {}).get('status', 'unknown')})")
        print(f"Regions: {', '.join(status.get('regions', []))}")
        return True
    except (requests.RequestException, ValueError) as e:
        print(f"Error connecting to service: {e}")
        print("\nMake sure the geoping service is running first!")
        return False

def generate_jwt_token(client_id: str, project_id: str = "default"):
    """Generate a JWT token for the given client."""
    response = requests.post(
        f"{GEOPING_URL}/generate-token",
        headers={"X-Token-Secret": TOKEN_SECRET},
        json={"client_id": client_id, "project_id": project_id},
        timeout=10
    )
    if response.status_code != 200:
        print(f"Token generation failed: {response.status_code} - {response.text}")
        return None
    return response.json()["token"]

def create_check(url: str, method: str = "GET", headers=None, token=None):
    """Start a check session and return its id."""
    payload = {"url": url, "method": method, "headers": headers or []}
    response = requests.post(
        f"{GEOPING_URL}/api/checks",
        headers={"X-API-Token": token or DEFAULT_TOKEN},
        json=payload,
        timeout=120
    )
    if response.status_code != 201:
        print(f"Check failed: {response.status_code} - {response.text}")
        return None
    return response.json()["id"]

def get_check(session_id: str):
    response = requests.get(f"{GEOPING_URL}/api/checks/{session_id}", timeout=10)
    if response.status_code == 404:
        print(f"Session {session_id} not found or expired")
        return None
    response.raise_for_status()
    return response.json()

def timeline_bar(widths: dict, width: int = BAR_WIDTH) -> str:
    """Render phase widths (percent) as a fixed-width character bar."""
    cells = []
    for phase, mark in PHASE_MARKS.items():
        cells.append(mark * round(widths[phase]["width"] / 100 * width))
    bar = "".join(cells)[:width]
    return bar.ljust(width, ".")

def render_breakdown(session: dict) -> str:
    """Format a fetched session as a text table, one row per region."""
    lines = [
        f"{session['method']} {session['url']}",
        f"Checked at {session['time_label']}",
        "",
        f"{'region':<10}{'status':>7}{'latency':>12}  timeline",
    ]
    for check in session["checks"]:
        lines.append(
            f"{check['region']:<10}{check['status']:>7}{check['latency_label']:>12}  "
            f"{timeline_bar(check['breakdown']['widths'])}"
        )
    for failure in session.get("failures", []):
        lines.append(f"{failure['region']:<10}{'-':>7}{'-':>12}  {failure['error']}: {failure['detail']}")
    lines.append("")
    lines.append("legend: " + ", ".join(f"{mark}={phase}" for phase, mark in PHASE_MARKS.items()))
    return "\n".join(lines)

def main():
    """Run a check and print its breakdown."""
    global GEOPING_URL

    parser = argparse.ArgumentParser(description="Demo client for geoping regional latency checks")
    parser.add_argument("target", nargs="?", help="URL to check")
    parser.add_argument("--method", "-X", default="GET", choices=["GET", "POST", "PUT", "DELETE", "HEAD"])
    parser.add_argument("--header", "-H", action="append", default=[], help="Request header as key:value")
    parser.add_argument("--session", "-s", help="Show an existing session instead of creating one")
    parser.add_argument("--generate-token", "-g", help="Generate a JWT token for the given client id")
    parser.add_argument("--use-token", "-t", help="Use specific token for requests")
    parser.add_argument("--json", action="store_true", help="Print the raw session JSON")
    parser.add_argument("--url", help=f"Service URL (default: {GEOPING_URL})")
    args = parser.parse_args()

    if args.url:
        GEOPING_URL = args.url

    print("=== geoping Demo Client ===")
    print(f"Service URL: {GEOPING_URL}")

    if not check_service():
        sys.exit(1)

    if args.generate_token:
        token = generate_jwt_token(args.generate_token)
        if token:
            print(f"\nToken: {token}")
            print(f"You can now use this token with: --use-token {token}")
        return

    session_id = args.session
    if not session_id:
        if not args.target:
            parser.error("a target URL or --session is required")
        headers = []
        for raw in args.header:
            key, _, value = raw.partition(":")
            headers.append({"key": key.strip(), "value": value.strip()})
        session_id = create_check(args.target, args.method, headers, args.use_token)
        if not session_id:
            sys.exit(1)
        print(f"\nSession: {session_id}")

    session = get_check(session_id)
    if session is None:
        sys.exit(1)

    print()
    print(json.dumps(session, indent=2) if args.json else render_breakdown(session))

if __name__ == "__main__":
    main()
