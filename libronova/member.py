from __future__ import annotations


class Member:
    """A library member who can borrow books."""

    def __init__(self, name: str, email: str, phone: str | None = None, address: str | None = None,
                 member_id: int | None = None, is_active: bool = True, created_at: str | None = None) -> None:
        self.member_id = member_id
        self.name = name.strip()
        self.email = email.strip().lower()
        self.phone = phone.strip() if phone else None
        self.address = address.strip() if address else None
        self.is_active = bool(is_active)
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} <{self.email}> (ID: {self.member_id})"

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Member":
        return Member(
            member_id=data.get("member_id"),
            name=data["name"],
            email=data["email"],
            phone=data.get("phone"),
            address=data.get("address"),
            is_active=bool(data.get("is_active", True)),
            created_at=data.get("created_at"),
        )
