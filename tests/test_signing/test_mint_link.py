# tests/test_signing/test_mint_link.py

import importlib.util
from pathlib import Path

from signgate.services.signing import TokenStatus, hmac_sha256_digest, parse_signed_path, verify

_SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "mint_link.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("mint_link", _SCRIPT)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def test_mint_with_ttl_verifies_until_expiry():
    mod = _load_script()
    path = mod.mint("show/ep1/index.m3u8", salt="alpha", algorithm="md5", now_ms=1_000_000, ttl_seconds=60)
    tok = parse_signed_path(path)
    assert tok.expiry == 1_060_000
    assert verify(tok, ["alpha"], 1_059_999) is TokenStatus.VALID
    assert verify(tok, ["alpha"], 1_060_000) is TokenStatus.EXPIRED


def test_mint_with_absolute_expiry_and_hmac():
    mod = _load_script()
    path = mod.mint("a.ts", salt="s", algorithm="hmac-sha256", now_ms=0, expires_at=5_000)
    tok = parse_signed_path(path)
    assert tok.expiry == 5_000
    assert verify(tok, ["s"], 1, digest_fn=hmac_sha256_digest) is TokenStatus.VALID
