# tests/test_signing/test_capability_tokens.py

import hashlib

import pytest

from signgate.services.signing import (
    CapabilityToken,
    MalformedTokenError,
    TokenStatus,
    build_signed_path,
    compute_digest,
    first_secret,
    get_digest_function,
    hmac_sha256_digest,
    md5_digest,
    parse_signed_path,
    verify,
)

T0 = 1_700_000_000_000
HOUR = 3_600_000


def _token(expiry, path, secret, digest_fn=md5_digest):
    return CapabilityToken(
        expiry=expiry,
        digest=compute_digest(expiry, path, secret, digest_fn=digest_fn),
        resource_path=path,
    )


# ─────────────────────────────────────────────────────────────
# Digest
# ─────────────────────────────────────────────────────────────

def test_md5_digest_is_uppercase_hex_of_plain_concatenation():
    expected = hashlib.md5(f"{T0}media/a.tsalpha".encode()).hexdigest().upper()
    assert md5_digest(T0, "media/a.ts", "alpha") == expected
    assert compute_digest(T0, "media/a.ts", "alpha") == expected


def test_digest_is_pure_and_secret_dependent():
    a = compute_digest(T0, "media/a.ts", "alpha")
    assert a == compute_digest(T0, "media/a.ts", "alpha")
    assert a == a.upper()
    assert a != compute_digest(T0, "media/a.ts", "beta")
    assert a != compute_digest(T0 + 1, "media/a.ts", "alpha")
    assert a != compute_digest(T0, "media/b.ts", "alpha")


def test_hmac_digest_differs_from_md5_and_is_selectable_by_name():
    assert get_digest_function("hmac-sha256") is hmac_sha256_digest
    assert get_digest_function("MD5") is md5_digest
    h = compute_digest(T0, "media/a.ts", "alpha", digest_fn=hmac_sha256_digest)
    assert len(h) == 64 and h == h.upper()
    assert h != compute_digest(T0, "media/a.ts", "alpha")


def test_unknown_digest_algorithm_raises():
    with pytest.raises(ValueError):
        get_digest_function("sha1")


# ─────────────────────────────────────────────────────────────
# Verification
# ─────────────────────────────────────────────────────────────

def test_valid_token_verifies_before_expiry():
    tok = _token(T0 + HOUR, "media/a.ts", "alpha")
    assert verify(tok, ["alpha"], T0 + 1000) is TokenStatus.VALID


@pytest.mark.parametrize("now", [T0 + HOUR, T0 + HOUR + 1, T0 + 37 * 100_000])
def test_expired_regardless_of_digest(now):
    good = _token(T0 + HOUR, "media/a.ts", "alpha")
    bad = good.model_copy(update={"digest": "0" * 32})
    assert verify(good, ["alpha"], now) is TokenStatus.EXPIRED
    assert verify(bad, ["alpha"], now) is TokenStatus.EXPIRED


def test_single_hex_char_change_is_invalid():
    good = _token(T0 + HOUR, "media/a.ts", "alpha")
    flipped = ("1" if good.digest[0] != "1" else "2") + good.digest[1:]
    tok = good.model_copy(update={"digest": flipped})
    assert verify(tok, ["alpha"], T0 + 1000) is TokenStatus.INVALID


def test_lowercase_digest_does_not_match():
    good = _token(T0 + HOUR, "media/a.ts", "alpha")
    tok = good.model_copy(update={"digest": good.digest.lower()})
    assert verify(tok, ["alpha"], T0) is TokenStatus.INVALID


def test_rotation_old_salt_still_verifies_after_new_salt_prepended():
    tok = _token(T0 + HOUR, "media/a.ts", "old")
    assert verify(tok, ["new", "old"], T0) is TokenStatus.VALID
    assert verify(tok, ["new"], T0) is TokenStatus.INVALID


def test_empty_secret_set_is_invalid():
    tok = _token(T0 + HOUR, "media/a.ts", "alpha")
    assert verify(tok, [], T0) is TokenStatus.INVALID


def test_hmac_tokens_verify_with_matching_function_only():
    tok = _token(T0 + HOUR, "media/a.ts", "alpha", digest_fn=hmac_sha256_digest)
    assert verify(tok, ["alpha"], T0, digest_fn=hmac_sha256_digest) is TokenStatus.VALID
    assert verify(tok, ["alpha"], T0) is TokenStatus.INVALID


# ─────────────────────────────────────────────────────────────
# Path parsing / minting
# ─────────────────────────────────────────────────────────────

def test_parse_signed_path_splits_fields():
    tok = parse_signed_path(f"/{T0}/ABCDEF/show/ep1/index.m3u8")
    assert tok.expiry == T0
    assert tok.digest == "ABCDEF"
    assert tok.resource_path == "show/ep1/index.m3u8"


def test_parse_keeps_percent_encoding():
    tok = parse_signed_path(f"/{T0}/ABC/show/my%20clip.ts")
    assert tok.resource_path == "show/my%20clip.ts"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "/",
        f"/{T0}/ABC",
        f"{T0}/ABC/a.ts",
        "/abc/ABC/a.ts",
        "/-1/ABC/a.ts",
        "/12345678901234567890/ABC/a.ts",
        f"/{T0}//a.ts",
    ],
)
def test_parse_rejects_malformed_paths(raw):
    with pytest.raises(MalformedTokenError):
        parse_signed_path(raw)


def test_build_signed_path_round_trips_through_parse_and_verify():
    path = build_signed_path(T0 + HOUR, "/show/my clip.ts", "alpha")
    assert path.startswith(f"/{T0 + HOUR}/")
    assert path.endswith("/show/my%20clip.ts")
    tok = parse_signed_path(path)
    assert verify(tok, ["alpha"], T0) is TokenStatus.VALID


def test_first_secret_is_head_of_rotation_list():
    assert first_secret(["new", "old"]) == "new"
    with pytest.raises(ValueError):
        first_secret([])
