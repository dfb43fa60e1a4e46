# tests/conftest.py
"""
Global test bootstrap
- Pins the gateway environment BEFORE `signgate` is imported (settings are read once)
- Keeps AWS lookups offline: fake static credentials, no profile/IMDS discovery
- Exposes small fixtures shared by the gateway and storage suites
"""

from __future__ import annotations

import os

import pytest

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set before importing the app so it takes effect)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("GATEWAY_MODE", "signed")
os.environ.setdefault("AWS_BUCKET_NAME", "unit-test-bucket")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "AKIDEXAMPLE")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY")
os.environ.setdefault("AWS_EC2_METADATA_DISABLED", "true")
os.environ.setdefault("HASH_SALTS", "alpha")
os.environ.setdefault("ALLOWED_FIRST_PATHS", "public")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_TO_FILE", "0")

# Fixed "now" used across suites (epoch millis)
T0 = 1_700_000_000_000


@pytest.fixture
def now_ms() -> int:
    return T0


@pytest.fixture
def media_playlist_text() -> str:
    return (
        "#EXTM3U\n"
        "#EXT-X-VERSION:3\n"
        "#EXT-X-TARGETDURATION:10\n"
        "#EXT-X-MEDIA-SEQUENCE:0\n"
        "#EXTINF:10.0,\n"
        "seg0.ts\n"
        "#EXTINF:10.0,\n"
        "seg1.ts\n"
        "#EXTINF:9.5,\n"
        "seg2.ts\n"
        "#EXT-X-ENDLIST\n"
    )
