#!/usr/bin/env python3
"""Smoke test a deployed narration service.

Usage:
  python scripts/smoke_test.py --api-base http://localhost:8080 --document-id sample.pdf

Checks ``/healthz`` and then POSTs one document to ``/narrate``. Exits non-zero
when either call fails. The document must already exist in SOURCE_BUCKET.
"""
from __future__ import annotations

import argparse
import json
import sys

import httpx


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--api-base", default="http://localhost:8080", help="Service base URL")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--document-id", help="Blob name inside SOURCE_BUCKET")
    target.add_argument("--file-url", help="gs:// or https:// URL of the source document")
    parser.add_argument("--voice", default=None, help="Override DEFAULT_VOICE")
    parser.add_argument("--timeout", type=float, default=300.0, help="Request timeout in seconds")
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    base = args.api_base.rstrip("/")
    payload = {"document_id": args.document_id, "file_url": args.file_url, "voice": args.voice}
    payload = {key: value for key, value in payload.items() if value}

    with httpx.Client(timeout=args.timeout) as client:
        health = client.get(f"{base}/healthz")
        if health.status_code != 200:
            print(f"healthz failed: {health.status_code} {health.text}", file=sys.stderr)
            return 1
        response = client.post(f"{base}/narrate", json=payload)

    body = response.json() if response.headers.get("content-type", "").startswith("application/json") else response.text
    print(json.dumps({"status": response.status_code, "body": body}, indent=2))
    if response.status_code != 200:
        return 1
    if body.get("used_chars", 0) > body.get("extracted_chars", 0):
        print("used_chars exceeds extracted_chars", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - manual utility
    sys.exit(run())
