"""Loan lifecycle: lending a copy and taking it back.

``create_loan`` and ``return_loan`` each run inside a single
``Database.transaction()``: the loan row write and the book stock write
commit together or not at all. Business-rule rejections come back as result
values carrying a ``CirculationError``; a store failure is rolled back,
logged, and reported as ``CirculationError.PERSISTENCE_FAILURE``.
"""
import logging
import sqlite3
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

from libronova.config import Settings
from libronova.database import Database
from libronova.errors import translate_db_errors
from libronova.loan import Loan, LoanStatus
from libronova.logging_config import log_request
from libronova.repositories import BookRepository, LoanRepository, MemberRepository
from libronova.validators import ISBNValidator

logger = logging.getLogger(__name__)


class CirculationError(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_OPERATION = "INVALID_OPERATION"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    INACTIVE_MEMBER = "INACTIVE_MEMBER"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


@dataclass(frozen=True)
class LoanResult:
    """Outcome of create_loan: either ``loan`` or ``error`` is set."""
    loan: Optional[Loan] = None
    error: Optional[CirculationError] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ReturnResult:
    """Outcome of return_loan (or of a fine preview).

    On success ``loan`` reflects the row as committed (or, for a preview,
    as it stands) and ``fine_amount`` / ``days_overdue`` describe the charge.
    """
    loan: Optional[Loan] = None
    fine_amount: Decimal = Decimal("0")
    days_overdue: int = 0
    error: Optional[CirculationError] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


class _Rejected(Exception):
    """Aborts the open transaction when a business rule fails."""

    def __init__(self, error: CirculationError, message: str) -> None:
        super().__init__(message)
        self.error = error
        self.message = message


class CirculationEngine:
    """Creates and returns loans, keeping book stock in step."""

    def __init__(self, db: Database, settings: Settings, clock: Callable[[], date] = date.today) -> None:
        self.db = db
        self.settings = settings
        self.clock = clock
        self.books = BookRepository(db)
        self.members = MemberRepository(db)
        self.loans = LoanRepository(db)

    # ------------------------- Lifecycle ------------------------- #
    def create_loan(self, isbn: str, member_id: int) -> LoanResult:
        """Lend one copy of ``isbn`` to ``member_id`` and take it off the shelf."""
        log_request(logger, "POST", "/api/loans")
        isbn = ISBNValidator.normalize_isbn(isbn)
        today = self.clock()
        try:
            with self.db.transaction() as conn:
                book = self.books.find_by_isbn(isbn, conn)
                if book is None:
                    raise _Rejected(CirculationError.NOT_FOUND, f"Book not found with ISBN: {isbn}")
                if not book.is_active:
                    raise _Rejected(CirculationError.INVALID_OPERATION, f"Book is inactive: {book.title}")
                if not book.has_available_copies:
                    raise _Rejected(CirculationError.INSUFFICIENT_STOCK, f"No available copies for: {book.title}")

                member = self.members.find_by_id(member_id, conn)
                if member is None:
                    raise _Rejected(CirculationError.NOT_FOUND, f"Member not found with ID: {member_id}")
                if not member.is_active:
                    raise _Rejected(CirculationError.INACTIVE_MEMBER, f"Member is inactive: {member.name}")

                loan = Loan.open(isbn, member_id, today, self.settings.loan_period_days)
                self.loans.insert(loan, conn)
                self.books.update_available_copies(isbn, book.available_copies - 1, conn)
        except _Rejected as rejected:
            logger.warning(f"Transaction rolled back: {rejected.message}")
            return LoanResult(error=rejected.error, message=rejected.message)
        except sqlite3.Error:
            logger.exception("Error creating loan, transaction rolled back")
            return LoanResult(error=CirculationError.PERSISTENCE_FAILURE, message="Error creating loan")

        logger.info(f"New loan created: Loan ID {loan.loan_id} - Book: {isbn} - Due: {loan.due_date}")
        return LoanResult(loan=loan, message="Loan created successfully")

    def return_loan(self, loan_id: int) -> ReturnResult:
        """Close an ACTIVE loan, charge any overdue fine and put the copy back."""
        log_request(logger, "PATCH", f"/api/loans/{loan_id}/return")
        today = self.clock()
        try:
            with self.db.transaction() as conn:
                loan = self.loans.find_by_id(loan_id, conn)
                if loan is None:
                    raise _Rejected(CirculationError.NOT_FOUND, f"Loan not found with ID: {loan_id}")
                if not loan.is_active:
                    raise _Rejected(CirculationError.INVALID_OPERATION, "Loan is already returned")

                days_overdue = loan.days_overdue(today)
                fine_amount = loan.calculate_fine(today, self.settings.fine_per_day)

                if not self.loans.mark_returned(loan_id, fine_amount, today, conn):
                    raise _Rejected(CirculationError.INVALID_OPERATION, "Loan is already returned")

                book = self.books.find_by_isbn(loan.isbn, conn)
                if book is not None:
                    # Never push stock above the total, even if counts drifted elsewhere
                    restored = min(book.available_copies + 1, book.total_copies)
                    if restored == book.available_copies:
                        logger.warning(f"Stock for {book.isbn} already at total ({book.total_copies}); not incremented")
                    else:
                        self.books.update_available_copies(book.isbn, restored, conn)
                else:
                    logger.warning(f"Book {loan.isbn} for loan {loan_id} no longer exists; stock not restored")
        except _Rejected as rejected:
            logger.warning(f"Transaction rolled back: {rejected.message}")
            return ReturnResult(error=rejected.error, message=rejected.message)
        except sqlite3.Error:
            logger.exception("Error returning loan, transaction rolled back")
            return ReturnResult(error=CirculationError.PERSISTENCE_FAILURE, message="Error returning loan")

        loan.status = LoanStatus.RETURNED
        loan.return_date = today
        loan.fine_amount = fine_amount
        logger.info(f"Loan returned: Loan ID {loan_id} - Fine: {fine_amount}")
        if fine_amount > 0:
            logger.info(f"Fine calculated: {fine_amount} for {days_overdue} days overdue")
        return ReturnResult(loan=loan, fine_amount=fine_amount, days_overdue=days_overdue,
                            message="Loan returned successfully")

    def preview_fine(self, loan_id: int) -> ReturnResult:
        """What return_loan would charge today, without writing anything."""
        today = self.clock()
        try:
            loan = self.loans.find_by_id(loan_id)
        except sqlite3.Error:
            logger.exception("Error previewing fine")
            return ReturnResult(error=CirculationError.PERSISTENCE_FAILURE, message="Error previewing fine")
        if loan is None:
            return ReturnResult(error=CirculationError.NOT_FOUND, message=f"Loan not found with ID: {loan_id}")
        if not loan.is_active:
            return ReturnResult(loan=loan, error=CirculationError.INVALID_OPERATION, message="Loan is already returned")
        return ReturnResult(
            loan=loan,
            fine_amount=loan.calculate_fine(today, self.settings.fine_per_day),
            days_overdue=loan.days_overdue(today),
        )

    # ------------------------- Queries ------------------------- #
    @translate_db_errors("Error finding loan")
    def find_loan(self, loan_id: int) -> Optional[Loan]:
        return self.loans.find_by_id(loan_id)

    @translate_db_errors("Error retrieving loans")
    def list_loans(self) -> List[Loan]:
        return self.loans.find_all()

    @translate_db_errors("Error retrieving active loans")
    def active_loans(self) -> List[Loan]:
        return self.loans.find_all_active()

    @translate_db_errors("Error retrieving overdue loans")
    def overdue_loans(self) -> List[Loan]:
        return self.loans.find_overdue(self.clock())

    @translate_db_errors("Error retrieving loans by member")
    def loans_for_member(self, member_id: int, active_only: bool = False) -> List[Loan]:
        if active_only:
            return self.loans.find_active_by_member(member_id)
        return self.loans.find_by_member(member_id)

    @translate_db_errors("Error retrieving loans by book")
    def loans_for_book(self, isbn: str) -> List[Loan]:
        return self.loans.find_by_book(ISBNValidator.normalize_isbn(isbn))

    @translate_db_errors("Error computing loan statistics")
    def statistics(self) -> dict:
        return self.loans.statistics(self.clock())
