from __future__ import annotations

from decimal import Decimal


class Book:
    """Represents a single catalog title and its copy stock."""

    def __init__(self, isbn: str, title: str, author: str, category: str | None = None,
                 total_copies: int = 1, available_copies: int | None = None,
                 reference_price: Decimal | float | str = Decimal("0"),
                 is_active: bool = True, created_at: str | None = None) -> None:
        self.isbn = isbn.strip()
        self.title = title.strip()
        self.author = author.strip()
        self.category = category.strip() if category else None
        self.total_copies = int(total_copies)
        # A new title starts with every copy on the shelf
        self.available_copies = self.total_copies if available_copies is None else int(available_copies)
        self.reference_price = Decimal(str(reference_price))
        self.is_active = bool(is_active)
        self.created_at = created_at

    @property
    def has_available_copies(self) -> bool:
        return self.available_copies > 0

    @property
    def loaned_copies(self) -> int:
        return self.total_copies - self.available_copies

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn}, {self.available_copies}/{self.total_copies})"

    def to_dict(self) -> dict:
        return {
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "reference_price": str(self.reference_price),
            "is_active": self.is_active,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # SQLite hands back is_active as 0/1 and reference_price as text
        return Book(
            isbn=data["isbn"],
            title=data["title"],
            author=data["author"],
            category=data.get("category"),
            total_copies=data.get("total_copies", 1),
            available_copies=data.get("available_copies"),
            reference_price=data.get("reference_price") or "0",
            is_active=bool(data.get("is_active", True)),
            created_at=data.get("created_at"),
        )
