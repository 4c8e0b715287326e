"""
Credential verifier hashing and bearer token helpers.

The client sends a verifier derived from the user's unlock credential.
The server never stores it as-is: it keeps a salted PBKDF2-SHA256 re-hash
and compares in constant time. Bearer tokens are random and only their
SHA-256 digest is persisted.

Stored format: ``pbkdf2_sha256$<iterations>$<salt b64>$<hash b64>``
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

from vaultward.config import get_config

ALGORITHM = "pbkdf2_sha256"
SALT_BYTES = 16


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def hash_verifier(verifier: str, *, iterations: int | None = None, salt: bytes | None = None) -> str:
    iterations = iterations or get_config().auth.verifier_iterations
    salt = salt or secrets.token_bytes(SALT_BYTES)
    derived = hashlib.pbkdf2_hmac("sha256", verifier.encode("utf-8"), salt, iterations)
    return f"{ALGORITHM}${iterations}${_b64(salt)}${_b64(derived)}"


def verify_verifier(verifier: str, stored: str | None) -> bool:
    """Constant-time check of a submitted verifier against a stored hash."""
    if not stored:
        return False
    try:
        algorithm, iterations, salt_b64, hash_b64 = stored.split("$")
        if algorithm != ALGORITHM:
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(hash_b64)
        derived = hashlib.pbkdf2_hmac("sha256", verifier.encode("utf-8"), salt, int(iterations))
    except ValueError:
        return False
    return hmac.compare_digest(derived, expected)


# Burns the same time as a real check when the email is unknown.
_DUMMY_HASH: str | None = None


def dummy_verify(verifier: str) -> bool:
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_verifier(secrets.token_urlsafe(16))
    verify_verifier(verifier, _DUMMY_HASH)
    return False


def new_token() -> str:
    return secrets.token_urlsafe(get_config().auth.token_bytes)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
