from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

from libronova import fines


class LoanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"


def _as_date(value) -> date | None:
    if value is None or isinstance(value, date):
        return value
    # Accept both plain dates and timestamps coming back from SQLite
    return date.fromisoformat(str(value)[:10])


class Loan:
    """One copy of a book lent to a member.

    A loan starts ACTIVE and moves to RETURNED exactly once; return_date and
    a non-zero fine_amount only mean something after that transition.
    """

    def __init__(self, isbn: str, member_id: int, loan_date: date, due_date: date,
                 loan_id: int | None = None, return_date: date | None = None,
                 fine_amount: Decimal | float | str = Decimal("0"),
                 status: LoanStatus | str = LoanStatus.ACTIVE, created_at: str | None = None) -> None:
        self.loan_id = loan_id
        self.isbn = isbn
        self.member_id = int(member_id)
        self.loan_date = _as_date(loan_date)
        self.due_date = _as_date(due_date)
        self.return_date = _as_date(return_date)
        self.fine_amount = Decimal(str(fine_amount))
        self.status = LoanStatus(status)
        self.created_at = created_at

    @classmethod
    def open(cls, isbn: str, member_id: int, today: date, loan_period_days: int) -> "Loan":
        """Build a fresh ACTIVE loan due loan_period_days after today."""
        return cls(
            isbn=isbn,
            member_id=member_id,
            loan_date=today,
            due_date=fines.due_date_for(today, loan_period_days),
        )

    @property
    def is_active(self) -> bool:
        return self.status is LoanStatus.ACTIVE

    def is_overdue(self, today: date) -> bool:
        return self.is_active and today > self.due_date

    def days_overdue(self, today: date) -> int:
        if not self.is_active:
            return 0
        return fines.overdue_days(self.due_date, today)

    def calculate_fine(self, today: date, per_day_rate: Decimal) -> Decimal:
        if not self.is_active:
            return Decimal("0")
        return fines.calculate_fine(self.due_date, today, per_day_rate)

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"Loan #{self.loan_id}: {self.isbn} -> member {self.member_id} due {self.due_date} [{self.status.value}]"

    def to_dict(self) -> dict:
        return {
            "loan_id": self.loan_id,
            "isbn": self.isbn,
            "member_id": self.member_id,
            "loan_date": self.loan_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "return_date": self.return_date.isoformat() if self.return_date else None,
            "fine_amount": str(self.fine_amount),
            "status": self.status.value,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            loan_id=data.get("loan_id"),
            isbn=data["isbn"],
            member_id=data["member_id"],
            loan_date=data["loan_date"],
            due_date=data["due_date"],
            return_date=data.get("return_date"),
            fine_amount=data.get("fine_amount") or "0",
            status=data.get("status", LoanStatus.ACTIVE.value),
            created_at=data.get("created_at"),
        )
