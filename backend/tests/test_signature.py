import hashlib
import hmac

import pytest

from cryptopay.services.signature import (
    compute_signature,
    derive_signing_key,
    verify,
)
from cryptopay.services.token import InvalidTokenError, validate_token


def test_derive_signing_key_is_token_sha256():
    assert derive_signing_key("5675:test_token") == hashlib.sha256(
        b"5675:test_token"
    ).digest()
    assert len(derive_signing_key("5675:test_token")) == 32


def test_compute_signature_matches_hmac(signing_key):
    body = b'{"update_id": 1}'
    expected = hmac.new(signing_key, body, hashlib.sha256).hexdigest()
    assert compute_signature(signing_key, body) == expected


@pytest.mark.parametrize(
    "body", [b"", b"{}", b"some body", '{"amount": "3.14 ₿"}'.encode(), bytes(range(256))]
)
def test_verify_correct_signature(signing_key, body):
    assert verify(signing_key, body, compute_signature(signing_key, body))


def test_verify_accepts_uppercase_hex(signing_key):
    body = b'{"update_id": 1}'
    assert verify(signing_key, body, compute_signature(signing_key, body).upper())


def test_verify_rejects_any_single_bit_flip(signing_key):
    body = b'{"update_id": -1, "update_type": "invoice_paid"}'
    mac = bytes.fromhex(compute_signature(signing_key, body))
    for i in range(len(mac) * 8):
        flipped = bytearray(mac)
        flipped[i // 8] ^= 1 << (i % 8)
        assert not verify(signing_key, body, flipped.hex()), f"bit {i} accepted"


def test_verify_rejects_other_key(signing_key):
    body = b"{}"
    other = derive_signing_key("5675:other_token")
    assert not verify(signing_key, body, compute_signature(other, body))


def test_verify_rejects_modified_body(signing_key):
    signature = compute_signature(signing_key, b'{"amount": "1"}')
    assert not verify(signing_key, b'{"amount": "100"}', signature)


@pytest.mark.parametrize(
    "signature",
    [None, "", "zz", "abc", "not a signature", "éé", "00" * 32, "00" * 31],
)
def test_verify_fails_closed_on_garbage(signing_key, signature):
    assert verify(signing_key, b"{}", signature) is False


def test_validate_token():
    assert validate_token("5675:test_token") == 5675


@pytest.mark.parametrize("token", ["", "no-colon", "abc:secret", "5675:"])
def test_validate_token_invalid(token):
    with pytest.raises(InvalidTokenError):
        validate_token(token)
