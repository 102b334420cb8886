# portsurgeon/core/security.py
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

# OWASP-recommended defaults
ph = PasswordHasher()


def hash_token(token: str) -> str:
    """Argon2 hash of an API token, for PORTSURGEON_API_TOKEN_HASH."""
    return ph.hash(token)


def verify_token(stored_hash: str, token: str) -> bool:
    """
    Checks an API token against its Argon2 hash.
    Malformed hashes and mismatches both return False.
    """
    if not stored_hash or not token:
        return False
    try:
        return ph.verify(stored_hash, token)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False
