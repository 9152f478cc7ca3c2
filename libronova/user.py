from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    ASSISTANT = "ASSISTANT"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class User:
    """A staff account allowed to operate the system."""

    def __init__(self, username: str, password_hash: str, role: UserRole | str = UserRole.ASSISTANT,
                 status: UserStatus | str = UserStatus.ACTIVE, user_id: int | None = None,
                 created_at: str | None = None) -> None:
        self.user_id = user_id
        self.username = username.strip()
        self.password_hash = password_hash
        self.role = UserRole(role)
        self.status = UserStatus(status)
        self.created_at = created_at

    @property
    def is_active(self) -> bool:
        return self.status is UserStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.username} ({self.role.value}, {self.status.value})"

    def to_dict(self) -> dict:
        # password_hash stays out of anything that leaves the process
        return {
            "user_id": self.user_id,
            "username": self.username,
            "role": self.role.value,
            "status": self.status.value,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            user_id=data.get("user_id"),
            username=data["username"],
            password_hash=data["password_hash"],
            role=data.get("role", UserRole.ASSISTANT.value),
            status=data.get("status", UserStatus.ACTIVE.value),
            created_at=data.get("created_at"),
        )
