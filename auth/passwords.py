"""Password policy and hashing."""

import logging
import re

from argon2 import PasswordHasher as Argon2Hasher
from argon2 import Type
from argon2.exceptions import InvalidHash, VerifyMismatchError

from auth.exceptions import ValidationError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def check_password_policy(password: str) -> None:
    """
    At least 8 characters with an upper-case letter, a lower-case letter and a digit.

    Raises:
        ValidationError: On the first rule the password breaks.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "password",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )
    if not _PASSWORD_PATTERN.match(password):
        raise ValidationError(
            "password",
            "Password must contain at least one uppercase letter, "
            "one lowercase letter, and one number",
        )


class PasswordHasher:
    """Argon2id hashing with a dummy verify for unknown accounts."""

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536):
        self._hasher = Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            type=Type.ID,
        )
        self._dummy_hash = self._hasher.hash("dummy-password-for-timing")

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        """True if password matches. Malformed stored hashes count as a mismatch."""
        try:
            return self._hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except InvalidHash:
            logger.error("Stored password hash is not a valid argon2 hash")
            return False

    def verify_dummy(self, password: str) -> None:
        """Spend the same work as a real verify when there is no account to check."""
        self.verify(self._dummy_hash, password)
