"""
Password hashing and verification.

Uses bcrypt for passwords and for the low-entropy reset OTPs. The async
variants run the hash in a worker thread so request handling is not blocked.
"""

import re

from fastapi.concurrency import run_in_threadpool
from passlib.context import CryptContext

from schoolerp.config import Settings

DEFAULT_BCRYPT_ROUNDS = 12

PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must include an uppercase letter"),
    (re.compile(r"[a-z]"), "Password must include a lowercase letter"),
    (re.compile(r"[0-9]"), "Password must include a number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must include a special character"),
)
PASSWORD_MIN_LENGTH = 8


class PasswordHasher:
    """
    bcrypt context with a configurable work factor.

    One instance is built per application from its settings and handed to
    the services that hash or check secrets.
    """

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self.rounds = rounds
        self.context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        return cls(settings.bcrypt_rounds)

    def hash(self, password: str) -> str:
        """
        Hash a password for storage.

        Args:
            password: Plain text password

        Returns:
            Hashed password
        """
        return self.context.hash(password)

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Args:
            plain_password: Plain text password to check
            hashed_password: Stored password hash

        Returns:
            True if password matches
        """
        return self.context.verify(plain_password, hashed_password)

    async def hash_async(self, password: str) -> str:
        return await run_in_threadpool(self.hash, password)

    async def verify_async(self, plain_password: str, hashed_password: str) -> bool:
        return await run_in_threadpool(self.verify, plain_password, hashed_password)


def password_policy_violation(password: str) -> str | None:
    """Return the first composition rule the password breaks, or None."""
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
    for pattern, message in PASSWORD_RULES:
        if not pattern.search(password):
            return message
    return None
