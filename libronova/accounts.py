import hashlib
import hmac
import logging
import os
import sqlite3
from typing import List, Optional

from libronova.config import Settings
from libronova.database import Database
from libronova.errors import (
    DatabaseError,
    DuplicateUsernameError,
    InvalidCredentialsError,
    PermissionDeniedError,
    translate_db_errors,
)
from libronova.logging_config import log_request
from libronova.repositories import UserRepository
from libronova.user import User, UserRole, UserStatus
from libronova.validators import CredentialValidator

logger = logging.getLogger(__name__)

PBKDF2_ROUNDS = 100_000


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ROUNDS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        salt_hex, digest_hex = stored.split("$", 1)
    except ValueError:
        return False
    expected = hash_password(password, bytes.fromhex(salt_hex)).split("$", 1)[1]
    return hmac.compare_digest(expected, digest_hex)


def new_user(username: str, password: str, role: UserRole = UserRole.ASSISTANT,
             status: UserStatus = UserStatus.ACTIVE) -> User:
    """Factory for a not-yet-persisted user with the default role and status."""
    return User(username=username, password_hash=hash_password(password), role=role, status=status)


class AccountService:
    """Staff accounts: login and the admin-only user management."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self.users = UserRepository(db)

    def ensure_admin(self, settings: Settings) -> Optional[User]:
        """Create the bootstrap administrator when the users table is empty."""
        if not settings.admin_password:
            return None
        try:
            if self.users.count() > 0:
                return None
            admin = self.users.create(new_user(settings.admin_username, settings.admin_password, role=UserRole.ADMIN))
        except sqlite3.Error as e:
            raise DatabaseError("Error creating administrator") from e
        logger.info(f"Bootstrap administrator created: {admin.username}")
        return admin

    def login(self, username: str, password: str) -> User:
        log_request(logger, "POST", "/api/auth/login", username)
        try:
            user = self.users.find_by_username(username)
        except sqlite3.Error as e:
            logger.error(f"Login failed: {e}")
            raise InvalidCredentialsError("Authentication error occurred") from e
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(f"Invalid credentials for {username}")
            raise InvalidCredentialsError("Invalid username or password")
        if not user.is_active:
            logger.warning(f"Inactive account tried to log in: {username}")
            raise InvalidCredentialsError("User account is inactive")
        logger.info(f"User logged in: {username}")
        return user

    def create_user(self, acting_user: User, username: str, password: str,
                    role: UserRole = UserRole.ASSISTANT) -> User:
        log_request(logger, "POST", "/api/users", acting_user.username)
        self.require_admin(acting_user)
        if not CredentialValidator.is_valid_username(username):
            raise ValueError("Username must be 3-20 letters, digits or underscores")
        if not CredentialValidator.is_valid_password(password):
            raise ValueError("Password must be at least 4 characters")
        user = new_user(username, password, role=role)
        try:
            if self.users.find_by_username(user.username):
                raise DuplicateUsernameError(f"Username already exists: {user.username}")
            self.users.create(user)
        except sqlite3.IntegrityError as e:
            raise DuplicateUsernameError(f"Username already exists: {user.username}") from e
        except sqlite3.Error as e:
            raise DatabaseError("Error creating user") from e
        logger.info(f"New user created: {user.username} ({user.role.value})")
        return user

    def set_status(self, acting_user: User, user_id: int, status: UserStatus) -> bool:
        self.require_admin(acting_user)
        try:
            user = self.users.find_by_id(user_id)
            if user is None:
                return False
            user.status = status
            return self.users.update(user)
        except sqlite3.Error as e:
            raise DatabaseError("Error updating user") from e

    @translate_db_errors("Error retrieving users")
    def list_users(self) -> List[User]:
        return self.users.find_all()

    @staticmethod
    def require_admin(user: User) -> None:
        if not user.is_active or not user.is_admin:
            logger.warning(f"Permission denied for {user.username}")
            raise PermissionDeniedError("Administrator role required")
