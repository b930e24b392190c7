from __future__ import annotations

"""
Password hashing and session-cookie helpers.

Passwords use Argon2id with the following minimum configuration:

- memory_cost: 19 MiB  (19 * 1024 KiB)
- time_cost:   2       (iterations)
- parallelism: 1       (degree of parallelism)

The session cookie carries only the user id, signed with `SECRET_KEY`
so it cannot be forged by editing the cookie value.
"""

from typing import Optional

from argon2 import PasswordHasher
from argon2 import exceptions as argon2_exc
from itsdangerous import BadData, URLSafeSerializer

from artists_api.core.config import get_settings

SESSION_COOKIE = "session"

argon2_hasher = PasswordHasher(
    time_cost=2,  # iterations
    memory_cost=19 * 1024,  # KiB → ≈ 19 MiB
    parallelism=1,
)


def hash_password(plain: str) -> str:
    """
    Hash a plain-text password using Argon2id.

    The returned string is safe to store directly in the database.
    """
    return argon2_hasher.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """
    Verify a plain-text password against an Argon2id hash.

    Returns True if the password is valid, False otherwise.
    """
    try:
        return argon2_hasher.verify(hashed, plain)
    except (argon2_exc.VerifyMismatchError, argon2_exc.VerificationError):
        # Wrong password, corrupted hash, or unsupported format
        return False
    except argon2_exc.InvalidHashError:
        return False


def _serializer() -> URLSafeSerializer:
    return URLSafeSerializer(get_settings().SECRET_KEY, salt="session")


def sign_session(user_id: int) -> str:
    """Return the signed cookie value for `user_id`."""
    return _serializer().dumps({"uid": user_id})


def read_session(value: Optional[str]) -> Optional[int]:
    """Return the user id from a signed cookie value, or None if invalid."""
    if not value:
        return None
    try:
        data = _serializer().loads(value)
    except BadData:
        return None
    uid = data.get("uid") if isinstance(data, dict) else None
    return uid if isinstance(uid, int) else None
