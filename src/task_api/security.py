from __future__ import annotations

import base64
import hashlib

import bcrypt


def _prehash(password: str) -> bytes:
    """
    SHA-256 then base64 so bcrypt always sees 44 printable bytes.

    bcrypt only reads the first 72 bytes of its input; pre-hashing keeps long
    passwords from being silently truncated.
    """
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


# PUBLIC_INTERFACE
def hash_password(password: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of the password."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_prehash(password), salt).decode("ascii")


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: str) -> bool:
    """Check a candidate password against a stored hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(_prehash(password), password_hash.encode("ascii"))
    except ValueError:
        return False
