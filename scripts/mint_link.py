#!/usr/bin/env python3
"""
SignGate • Mint Signed Link
===========================

Print a time-limited `/{expiry}/{digest}/{key}` link for an object key.

The salt defaults to the first entry of `HASH_SALTS` (the one new links are
signed with during a rotation) and the algorithm to `DIGEST_ALGORITHM`.

Example
-------
    python scripts/mint_link.py --path show/ep1/index.m3u8 --ttl-seconds 3600 \
        --base-url https://media.example.com
"""

import argparse
import sys
import time
from typing import Optional

from signgate.core.config import settings
from signgate.services.signing import build_signed_path, first_secret, get_digest_function


def mint(
    key: str,
    *,
    salt: str,
    algorithm: str,
    now_ms: int,
    ttl_seconds: Optional[int] = None,
    expires_at: Optional[int] = None,
) -> str:
    """Signed path for `key`, expiring at `expires_at` (ms) or `ttl_seconds` from `now_ms`."""
    expiry = expires_at if expires_at is not None else now_ms + int(ttl_seconds or 0) * 1000
    return build_signed_path(expiry, key, salt, digest_fn=get_digest_function(algorithm))


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--path", required=True, help="Object key, e.g. show/ep1/index.m3u8")
    when = ap.add_mutually_exclusive_group()
    when.add_argument("--ttl-seconds", type=int, default=3600, help="Link lifetime in seconds")
    when.add_argument("--expires-at", type=int, default=None, help="Absolute expiry (epoch millis)")
    ap.add_argument("--base-url", default="", help="Gateway origin to prefix the path with")
    ap.add_argument("--salt", default=None, help="Signing salt (defaults to the first HASH_SALTS entry)")
    ap.add_argument("--algorithm", default=settings.DIGEST_ALGORITHM, choices=["md5", "hmac-sha256"])
    args = ap.parse_args()

    now_ms = int(time.time() * 1000)
    if args.expires_at is not None and args.expires_at <= now_ms:
        print("--expires-at is in the past", file=sys.stderr)
        sys.exit(2)
    if args.expires_at is None and args.ttl_seconds <= 0:
        print("--ttl-seconds must be positive", file=sys.stderr)
        sys.exit(2)

    try:
        salt = args.salt or first_secret(settings.HASH_SALTS)
    except ValueError:
        print("No --salt given and HASH_SALTS is empty", file=sys.stderr)
        sys.exit(2)

    path = mint(
        args.path,
        salt=salt,
        algorithm=args.algorithm,
        now_ms=now_ms,
        ttl_seconds=args.ttl_seconds,
        expires_at=args.expires_at,
    )
    print(args.base_url.rstrip("/") + path)


if __name__ == "__main__":
    main()
