import binascii
import hashlib
import hmac

HEADER_SIGNATURE_NAME = "crypto-pay-api-signature"


class WrongSignatureError(Exception):
    """
    The request body does not match its signature header.

    Happens when someone who knows the webhook path sends forged requests,
    or when the body was altered in transit.
    """

    def __init__(self, message: str = "wrong request signature"):
        super().__init__(message)


def derive_signing_key(token: str) -> bytes:
    """
    Return the SHA-256 digest of the app token.

    Crypto Pay signs webhook bodies with this digest, so it is the only
    form of the token a receiver needs to keep.
    """
    return hashlib.sha256(token.encode("utf-8")).digest()


def compute_signature(signing_key: bytes, raw_body: bytes) -> str:
    return hmac.new(signing_key, raw_body, hashlib.sha256).hexdigest()


def verify(signing_key: bytes, raw_body: bytes, signature: str | None) -> bool:
    """
    Compare the HMAC-SHA-256 of ``raw_body`` with the hex ``signature``.

    A missing or undecodable signature counts as a mismatch.
    """
    if not signature:
        return False
    try:
        provided = binascii.unhexlify(signature.strip())
    except ValueError:
        return False
    expected = hmac.new(signing_key, raw_body, hashlib.sha256).digest()
    return hmac.compare_digest(expected, provided)
