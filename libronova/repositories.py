"""Persistence gateway: one repository per table.

Every method takes an optional ``conn``. Passing the connection yielded by
``Database.transaction()`` makes the call part of that transaction; without
it the repository opens (and closes) its own connection. Lookups return
``None`` for a missing row and never raise for "not found". sqlite3 errors
propagate to the caller.
"""
import sqlite3
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from libronova.book import Book
from libronova.database import Database
from libronova.loan import Loan, LoanStatus
from libronova.member import Member
from libronova.user import User

BOOK_COLUMNS = """
    isbn, title, author, category, total_copies, available_copies,
    reference_price, is_active, created_at
"""
MEMBER_COLUMNS = "member_id, name, email, phone, address, is_active, created_at"
LOAN_COLUMNS = """
    loan_id, isbn, member_id, loan_date, due_date, return_date,
    fine_amount, status, created_at
"""
USER_COLUMNS = "user_id, username, password_hash, role, status, created_at"


class BaseRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    @contextmanager
    def _reader(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
        else:
            with self.db.connection() as own:
                yield own

    @contextmanager
    def _writer(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
        else:
            with self.db.transaction() as own:
                yield own


class BookRepository(BaseRepository):

    def create(self, book: Book, conn: Optional[sqlite3.Connection] = None) -> Book:
        with self._writer(conn) as c:
            c.execute(
                """
                INSERT INTO books (
                    isbn, title, author, category, total_copies, available_copies,
                    reference_price, is_active
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    book.isbn, book.title, book.author, book.category, book.total_copies,
                    book.available_copies, str(book.reference_price), int(book.is_active),
                ),
            )
            row = c.execute("SELECT created_at FROM books WHERE isbn = ?", (book.isbn,)).fetchone()
            if row:
                book.created_at = row[0]
        return book

    def find_by_isbn(self, isbn: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Book]:
        with self._reader(conn) as c:
            row = c.execute(f"SELECT {BOOK_COLUMNS} FROM books WHERE isbn = ?", (isbn,)).fetchone()
            return Book.from_dict(dict(row)) if row else None

    def exists_by_isbn(self, isbn: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._reader(conn) as c:
            return c.execute("SELECT 1 FROM books WHERE isbn = ?", (isbn,)).fetchone() is not None

    def _select(self, where: str = "", params: tuple = (), order_by: str = "title") -> List[Book]:
        with self.db.connection() as c:
            rows = c.execute(f"SELECT {BOOK_COLUMNS} FROM books {where} ORDER BY {order_by}", params).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]

    def find_all(self) -> List[Book]:
        return self._select(order_by="created_at DESC, title")

    def find_all_active(self) -> List[Book]:
        return self._select("WHERE is_active = 1")

    def find_by_category(self, category: str) -> List[Book]:
        return self._select("WHERE category = ? AND is_active = 1", (category,))

    def find_by_author(self, author: str) -> List[Book]:
        return self._select("WHERE author LIKE ? AND is_active = 1", (f"%{author}%",))

    def search(self, query: str) -> List[Book]:
        like = f"%{query}%"
        return self._select("WHERE title LIKE ? OR author LIKE ? OR isbn LIKE ?", (like, like, like))

    def update(self, book: Book, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._writer(conn) as c:
            cursor = c.execute(
                """
                UPDATE books SET title = ?, author = ?, category = ?, total_copies = ?,
                       available_copies = ?, reference_price = ?, is_active = ?
                WHERE isbn = ?
                """,
                (
                    book.title, book.author, book.category, book.total_copies, book.available_copies,
                    str(book.reference_price), int(book.is_active), book.isbn,
                ),
            )
            return cursor.rowcount > 0

    def update_available_copies(self, isbn: str, new_value: int, conn: Optional[sqlite3.Connection] = None) -> bool:
        """Set the absolute stock count; the table CHECK rejects out-of-range values."""
        with self._writer(conn) as c:
            cursor = c.execute("UPDATE books SET available_copies = ? WHERE isbn = ?", (new_value, isbn))
            return cursor.rowcount > 0

    def set_active(self, isbn: str, active: bool, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._writer(conn) as c:
            cursor = c.execute("UPDATE books SET is_active = ? WHERE isbn = ?", (int(active), isbn))
            return cursor.rowcount > 0

    def delete(self, isbn: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._writer(conn) as c:
            cursor = c.execute("DELETE FROM books WHERE isbn = ?", (isbn,))
            return cursor.rowcount > 0

    def statistics(self) -> Dict[str, Any]:
        with self.db.connection() as c:
            row = c.execute(
                """
                SELECT COUNT(*) AS total_books,
                       COUNT(DISTINCT author) AS unique_authors,
                       COALESCE(SUM(total_copies), 0) AS total_copies,
                       COALESCE(SUM(available_copies), 0) AS available_copies,
                       COALESCE(SUM(CASE WHEN is_active = 1 THEN 1 ELSE 0 END), 0) AS active_books
                FROM books
                """
            ).fetchone()
            return dict(row)


class MemberRepository(BaseRepository):

    def create(self, member: Member, conn: Optional[sqlite3.Connection] = None) -> Member:
        with self._writer(conn) as c:
            cursor = c.execute(
                "INSERT INTO members (name, email, phone, address, is_active) VALUES (?, ?, ?, ?, ?)",
                (member.name, member.email, member.phone, member.address, int(member.is_active)),
            )
            member.member_id = cursor.lastrowid
            row = c.execute("SELECT created_at FROM members WHERE member_id = ?", (member.member_id,)).fetchone()
            if row:
                member.created_at = row[0]
        return member

    def find_by_id(self, member_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Member]:
        with self._reader(conn) as c:
            row = c.execute(f"SELECT {MEMBER_COLUMNS} FROM members WHERE member_id = ?", (member_id,)).fetchone()
            return Member.from_dict(dict(row)) if row else None

    def find_by_email(self, email: str) -> Optional[Member]:
        with self.db.connection() as c:
            row = c.execute(
                f"SELECT {MEMBER_COLUMNS} FROM members WHERE email = ?", (email.strip().lower(),)
            ).fetchone()
            return Member.from_dict(dict(row)) if row else None

    def exists_by_email(self, email: str, exclude_id: Optional[int] = None) -> bool:
        with self.db.connection() as c:
            if exclude_id is None:
                row = c.execute("SELECT 1 FROM members WHERE email = ?", (email.strip().lower(),)).fetchone()
            else:
                row = c.execute(
                    "SELECT 1 FROM members WHERE email = ? AND member_id != ?",
                    (email.strip().lower(), exclude_id),
                ).fetchone()
            return row is not None

    def find_all(self) -> List[Member]:
        with self.db.connection() as c:
            rows = c.execute(f"SELECT {MEMBER_COLUMNS} FROM members ORDER BY created_at DESC, member_id DESC").fetchall()
            return [Member.from_dict(dict(row)) for row in rows]

    def find_all_active(self) -> List[Member]:
        with self.db.connection() as c:
            rows = c.execute(f"SELECT {MEMBER_COLUMNS} FROM members WHERE is_active = 1 ORDER BY name").fetchall()
            return [Member.from_dict(dict(row)) for row in rows]

    def update(self, member: Member, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._writer(conn) as c:
            cursor = c.execute(
                "UPDATE members SET name = ?, email = ?, phone = ?, address = ?, is_active = ? WHERE member_id = ?",
                (member.name, member.email, member.phone, member.address, int(member.is_active), member.member_id),
            )
            return cursor.rowcount > 0

    def set_active(self, member_id: int, active: bool, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._writer(conn) as c:
            cursor = c.execute("UPDATE members SET is_active = ? WHERE member_id = ?", (int(active), member_id))
            return cursor.rowcount > 0

    def delete(self, member_id: int, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._writer(conn) as c:
            cursor = c.execute("DELETE FROM members WHERE member_id = ?", (member_id,))
            return cursor.rowcount > 0


class LoanRepository(BaseRepository):

    def insert(self, loan: Loan, conn: sqlite3.Connection) -> Loan:
        """Insert an ACTIVE loan inside the caller's transaction and assign its id."""
        cursor = conn.execute(
            """
            INSERT INTO loans (isbn, member_id, loan_date, due_date, fine_amount, status)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                loan.isbn, loan.member_id, loan.loan_date.isoformat(), loan.due_date.isoformat(),
                str(loan.fine_amount), loan.status.value,
            ),
        )
        loan.loan_id = cursor.lastrowid
        row = conn.execute("SELECT created_at FROM loans WHERE loan_id = ?", (loan.loan_id,)).fetchone()
        if row:
            loan.created_at = row[0]
        return loan

    def mark_returned(self, loan_id: int, fine_amount: Decimal, return_date: date, conn: sqlite3.Connection) -> bool:
        """Flip an ACTIVE loan to RETURNED; returns False if it was not ACTIVE."""
        cursor = conn.execute(
            """
            UPDATE loans SET status = ?, return_date = ?, fine_amount = ?
            WHERE loan_id = ? AND status = ?
            """,
            (LoanStatus.RETURNED.value, return_date.isoformat(), str(fine_amount), loan_id, LoanStatus.ACTIVE.value),
        )
        return cursor.rowcount > 0

    def find_by_id(self, loan_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Loan]:
        with self._reader(conn) as c:
            row = c.execute(f"SELECT {LOAN_COLUMNS} FROM loans WHERE loan_id = ?", (loan_id,)).fetchone()
            return Loan.from_dict(dict(row)) if row else None

    def _select(self, where: str = "", params: tuple = (), order_by: str = "created_at DESC, loan_id DESC") -> List[Loan]:
        with self.db.connection() as c:
            rows = c.execute(f"SELECT {LOAN_COLUMNS} FROM loans {where} ORDER BY {order_by}", params).fetchall()
            return [Loan.from_dict(dict(row)) for row in rows]

    def find_all(self) -> List[Loan]:
        return self._select()

    def find_all_active(self) -> List[Loan]:
        return self._select("WHERE status = ?", (LoanStatus.ACTIVE.value,), order_by="due_date, loan_id")

    def find_overdue(self, today: date) -> List[Loan]:
        # ISO dates compare correctly as text
        return self._select(
            "WHERE status = ? AND due_date < ?",
            (LoanStatus.ACTIVE.value, today.isoformat()),
            order_by="due_date, loan_id",
        )

    def find_by_member(self, member_id: int) -> List[Loan]:
        return self._select("WHERE member_id = ?", (member_id,))

    def find_active_by_member(self, member_id: int) -> List[Loan]:
        return self._select(
            "WHERE member_id = ? AND status = ?", (member_id, LoanStatus.ACTIVE.value), order_by="due_date, loan_id"
        )

    def find_by_book(self, isbn: str) -> List[Loan]:
        return self._select("WHERE isbn = ?", (isbn,))

    def statistics(self, today: date) -> Dict[str, Any]:
        with self.db.connection() as c:
            row = c.execute(
                """
                SELECT COUNT(*) AS total_loans,
                       COALESCE(SUM(CASE WHEN status = 'ACTIVE' THEN 1 ELSE 0 END), 0) AS active_loans,
                       COALESCE(SUM(CASE WHEN status = 'ACTIVE' AND due_date < ? THEN 1 ELSE 0 END), 0) AS overdue_loans
                FROM loans
                """,
                (today.isoformat(),),
            ).fetchone()
            stats = dict(row)
            fines = c.execute("SELECT fine_amount FROM loans WHERE status = 'RETURNED'").fetchall()
            stats["fines_collected"] = sum((Decimal(r[0]) for r in fines), Decimal("0"))
            return stats


class UserRepository(BaseRepository):

    def create(self, user: User, conn: Optional[sqlite3.Connection] = None) -> User:
        with self._writer(conn) as c:
            cursor = c.execute(
                "INSERT INTO users (username, password_hash, role, status) VALUES (?, ?, ?, ?)",
                (user.username, user.password_hash, user.role.value, user.status.value),
            )
            user.user_id = cursor.lastrowid
            row = c.execute("SELECT created_at FROM users WHERE user_id = ?", (user.user_id,)).fetchone()
            if row:
                user.created_at = row[0]
        return user

    def find_by_id(self, user_id: int) -> Optional[User]:
        with self.db.connection() as c:
            row = c.execute(f"SELECT {USER_COLUMNS} FROM users WHERE user_id = ?", (user_id,)).fetchone()
            return User.from_dict(dict(row)) if row else None

    def find_by_username(self, username: str) -> Optional[User]:
        with self.db.connection() as c:
            row = c.execute(f"SELECT {USER_COLUMNS} FROM users WHERE username = ?", (username.strip(),)).fetchone()
            return User.from_dict(dict(row)) if row else None

    def find_all(self) -> List[User]:
        with self.db.connection() as c:
            rows = c.execute(f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at DESC, user_id DESC").fetchall()
            return [User.from_dict(dict(row)) for row in rows]

    def update(self, user: User, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._writer(conn) as c:
            cursor = c.execute(
                "UPDATE users SET username = ?, password_hash = ?, role = ?, status = ? WHERE user_id = ?",
                (user.username, user.password_hash, user.role.value, user.status.value, user.user_id),
            )
            return cursor.rowcount > 0

    def count(self) -> int:
        with self.db.connection() as c:
            return c.execute("SELECT COUNT(*) FROM users").fetchone()[0]
