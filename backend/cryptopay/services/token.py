class InvalidTokenError(ValueError):
    pass


def validate_token(token: str) -> int:
    """
    Check a Crypto Pay API token of the form ``<app_id>:<secret>``.

    Returns the numeric app id, raises InvalidTokenError otherwise.
    """
    parts = token.split(":", 1)
    if len(parts) != 2 or not parts[1]:
        raise InvalidTokenError("invalid token parts")
    try:
        return int(parts[0])
    except ValueError:
        raise InvalidTokenError("invalid app id in token")
