"""Password hashing utilities.

Uses bcrypt: every hash embeds its own random salt and cost factor, so
two hashes of the same password never match byte for byte. Passwords are
truncated to 72 bytes (bcrypt's limit).

Hashing is CPU-bound (~100ms at 12 rounds), so the async PasswordHasher
runs it on a worker thread to keep the event loop serving other requests.
"""

import asyncio

import bcrypt
import structlog

from accounts.errors import InternalError, ValidationError

logger = structlog.get_logger()

DEFAULT_ROUNDS = 12


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password with bcrypt. Output looks like "$2b$12$..."."""
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against its hash.

    Returns False for malformed or missing hashes instead of raising.
    bcrypt.checkpw compares in constant time.
    """
    if not password_hash or not password_hash.startswith("$2"):
        return False
    try:
        pw_bytes = password.encode("utf-8")[:72]
        hash_bytes = password_hash.encode("utf-8")
        return bcrypt.checkpw(pw_bytes, hash_bytes)
    except (ValueError, TypeError):
        return False


class PasswordHasher:
    """Async facade over bcrypt with a configurable cost factor."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        self.rounds = rounds

    async def hash(self, password: str) -> str:
        """Hash on a worker thread.

        Passwords that cannot be encoded as UTF-8 are rejected as bad input;
        any other bcrypt failure is an InternalError.
        """
        try:
            return await asyncio.to_thread(hash_password, password, self.rounds)
        except UnicodeEncodeError as e:
            raise ValidationError("Password contains invalid characters") from e
        except (ValueError, TypeError) as e:
            logger.error("password.hash_failed", error=str(e))
            raise InternalError() from e

    async def verify(self, password: str, password_hash: str | None) -> bool:
        return await asyncio.to_thread(verify_password, password, password_hash)
