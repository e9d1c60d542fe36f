#!/usr/bin/env python3
"""
Sign a webhook body the way Crypto Pay does, for manual testing:

    curl -X POST localhost:8000/cryptopay/webhook \
        -H "crypto-pay-api-signature: $(make_sig.py "$TOKEN" "$BODY")" \
        -d "$BODY"
"""

import json
import sys

from cryptopay.services.signature import compute_signature, derive_signing_key


def make_signature(token: str, payload: str) -> str:
    return compute_signature(derive_signing_key(token), payload.encode("utf-8"))


def main(argv: list[str]) -> int:
    if len(argv) != 3:
        print("Usage: make_sig.py <token> <payload>", file=sys.stderr)
        return 1

    token, payload = argv[1], argv[2]

    # Validate payload is valid JSON
    try:
        json.loads(payload)
    except json.JSONDecodeError:
        print("Error: Payload must be valid JSON", file=sys.stderr)
        return 1

    print(make_signature(token, payload))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
