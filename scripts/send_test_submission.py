#!/usr/bin/env python3
"""
Dev helper: POST a sample visitor capture to a running Visitor Relay server.

Builds the same JSON body the landing page sends, optionally from a real
image file, and prints the server's response.

Usage
-----
# Basic: 1x1 PNG, no location, targeting localhost:3000
python scripts/send_test_submission.py

# Send a specific photo
python scripts/send_test_submission.py --file path/to/photo.jpg

# Include coordinates
python scripts/send_test_submission.py --lat 48.8566 --lon 2.3522

# Send a remote image URL instead of a data URI
python scripts/send_test_submission.py --image-url https://example.com/x.png

# Print the body without sending
python scripts/send_test_submission.py --dry-run

Without SMTP_PASS on the server side the message goes to a disposable
Ethereal mailbox; the preview URL shows up in the server log.
"""

import argparse
import base64
import json
import mimetypes
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx

# Smallest valid PNG (1x1 transparent pixel)
_SAMPLE_PNG_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def _file_to_data_uri(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    payload = base64.b64encode(path.read_bytes()).decode()
    return f"data:{mime or 'image/png'};base64,{payload}"


def _print_response(response: httpx.Response) -> None:
    symbol = "OK" if response.is_success else "FAIL"
    print(f"\n[{symbol}] HTTP {response.status_code}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Send a sample visitor capture to POST /submit.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", default="http://localhost:3000", help="Server base URL")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--file", type=Path, help="Image file to send as a data URI")
    source.add_argument("--image-url", help="Send a remote image URL instead")
    parser.add_argument("--lat", type=float, help="Latitude to report")
    parser.add_argument("--lon", type=float, help="Longitude to report")
    parser.add_argument("--dry-run", action="store_true", help="Print the body and exit")
    args = parser.parse_args()

    if args.file:
        if not args.file.is_file():
            print(f"ERROR: File not found: {args.file}", file=sys.stderr)
            return 1
        image = _file_to_data_uri(args.file)
        print(f"Attaching file: {args.file} ({args.file.stat().st_size:,} bytes)")
    elif args.image_url:
        image = args.image_url
    else:
        image = f"data:image/png;base64,{_SAMPLE_PNG_B64}"
        print("No --file specified; using a 1x1 sample PNG")

    body = {"image": image, "time": datetime.now(timezone.utc).isoformat()}
    if args.lat is not None:
        body["latitude"] = args.lat
    if args.lon is not None:
        body["longitude"] = args.lon

    endpoint = f"{args.url.rstrip('/')}/submit"
    print(f"\nEndpoint : {endpoint}")
    print(f"Time     : {body['time']}")

    if args.dry_run:
        display = dict(body)
        if len(display["image"]) > 80:
            display["image"] = display["image"][:80] + "..."
        print("\n[DRY RUN] Body:")
        print(json.dumps(display, indent=2))
        return 0

    try:
        response = httpx.post(endpoint, json=body, timeout=120.0)
    except httpx.HTTPError as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
