"""Sign-up and login against the collaboration store."""

import logging
import re
from datetime import date
from typing import Optional

import bcrypt

from sprintnotes.database.collab_repository import CollabRepository
from sprintnotes.models.collab import Role, User

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
BCRYPT_ROUNDS = 10


class AuthError(Exception):
    """Sign-up or login failed."""

    pass


class AuthService:
    """Creates accounts and checks credentials."""

    def __init__(self, repository: CollabRepository, rounds: int = BCRYPT_ROUNDS):
        """Initialize the service.

        Args:
            repository: Collaboration store
            rounds: bcrypt cost factor
        """
        self.repository = repository
        self.rounds = rounds

    def signup(
        self,
        email: str,
        password: str,
        birthday: str,
        role: str,
        subjects: list[str],
    ) -> User:
        """Register a new user.

        Args:
            email: Login e-mail, stored lower-cased
            password: Plain password, at least 8 characters
            birthday: ISO date (YYYY-MM-DD)
            role: "mentor" or "mentee"
            subjects: Non-empty list of subject tags

        Raises:
            ValueError: If any field is missing or malformed
            AuthError: If the e-mail is already registered
        """
        if not email or not password or not birthday or not role or not subjects:
            raise ValueError("All fields are required")
        if not EMAIL_RE.match(email):
            raise ValueError("Invalid email format")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        try:
            user_role = Role(role)
        except ValueError as e:
            raise ValueError("Invalid role. Must be mentor or mentee") from e
        try:
            date.fromisoformat(birthday)
        except ValueError as e:
            raise ValueError("Invalid birthday format") from e

        email = email.lower()
        if self.repository.get_user_credentials(email) is not None:
            raise AuthError("An account with this email already exists")

        password_hash = bcrypt.hashpw(
            password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)
        ).decode("utf-8")
        user = User(email=email, role=user_role, subjects=list(subjects), birthday=birthday)
        self.repository.add_user(user, password_hash)
        logger.info("Registered %s as %s", email, user_role.value)
        return user

    def login(self, email: str, password: str) -> User:
        """Check credentials and return the user.

        Raises:
            ValueError: If a field is missing or the e-mail is malformed
            AuthError: If the credentials do not match
        """
        if not email or not password:
            raise ValueError("Email and password are required")
        if not EMAIL_RE.match(email):
            raise ValueError("Invalid email format")

        found: Optional[tuple[User, str]] = self.repository.get_user_credentials(email)
        if found is None:
            raise AuthError("Invalid email or password")

        user, password_hash = found
        if not bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8")):
            raise AuthError("Invalid email or password")
        return user
