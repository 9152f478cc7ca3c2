from __future__ import annotations

import logging
import sqlite3
from decimal import Decimal
from typing import Any, Dict, List, Optional

from libronova.book import Book
from libronova.database import Database
from libronova.errors import (
    DatabaseError,
    DuplicateIsbnError,
    EntityInUseError,
    StockInvariantError,
    translate_db_errors,
)
from libronova.logging_config import log_request
from libronova.repositories import BookRepository
from libronova.validators import ISBNValidator, TextValidator

logger = logging.getLogger(__name__)


class Library:
    """Manages the book catalog.

    Stock (available_copies) is owned by the circulation engine; the only
    catalog path that touches it is a change of total_copies, which shifts
    the available count by the same amount.
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.books = BookRepository(db)

    # ------------------------- Core operations ------------------------- #
    def add_book(self, book: Book) -> Book:
        """Add a pre-constructed Book. Prevent duplicates by ISBN."""
        log_request(logger, "POST", "/api/books")
        book.isbn = self._normalize_isbn(book.isbn)
        book.title = TextValidator.sanitize_text(book.title)
        book.author = TextValidator.sanitize_text(book.author)
        self._validate_book(book)
        try:
            if self.books.exists_by_isbn(book.isbn):
                raise DuplicateIsbnError(f"Book with ISBN {book.isbn} already exists.")
            self.books.create(book)
        except sqlite3.IntegrityError as e:
            raise DuplicateIsbnError(f"Book with ISBN {book.isbn} already exists.") from e
        except sqlite3.Error as e:
            logger.error(f"Error creating book {book.isbn}: {e}")
            raise DatabaseError("Error creating book") from e
        logger.info(f"New book created: {book.isbn} - {book.title}")
        return book

    def create_book(self, isbn: str, title: str, author: str, category: Optional[str] = None,
                    total_copies: int = 1, reference_price: Decimal | float | str = Decimal("0")) -> Book:
        return self.add_book(Book(
            isbn=isbn, title=title, author=author, category=category,
            total_copies=total_copies, reference_price=reference_price,
        ))

    def remove_book(self, isbn: str) -> bool:
        """Hard delete. Refused while any loan row still references the book."""
        log_request(logger, "DELETE", f"/api/books/{isbn}")
        isbn = self._normalize_isbn(isbn)
        try:
            deleted = self.books.delete(isbn)
        except sqlite3.IntegrityError as e:
            logger.warning(f"Refused to delete book {isbn}: loans reference it")
            raise EntityInUseError(f"Book {isbn} has loan records and cannot be deleted; deactivate it instead.") from e
        except sqlite3.Error as e:
            raise DatabaseError("Error deleting book") from e
        if deleted:
            logger.info(f"Book deleted: {isbn}")
        return deleted

    @translate_db_errors("Error retrieving books")
    def list_books(self, active_only: bool = False) -> List[Book]:
        """List books from the database (fresh on every call)."""
        return self.books.find_all_active() if active_only else self.books.find_all()

    @translate_db_errors("Error retrieving books by category")
    def list_by_category(self, category: str) -> List[Book]:
        return self.books.find_by_category(category.strip())

    @translate_db_errors("Error retrieving books by author")
    def list_by_author(self, author: str) -> List[Book]:
        return self.books.find_by_author(author.strip())

    @translate_db_errors("Error searching books")
    def search_books(self, query: str) -> List[Book]:
        """Search books by title, author or ISBN."""
        return self.books.search(query.strip())

    @translate_db_errors("Error finding book")
    def find_book(self, isbn: str) -> Optional[Book]:
        return self.books.find_by_isbn(self._normalize_isbn(isbn))

    def update_book(self, isbn: str, *, title: Optional[str] = None, author: Optional[str] = None,
                    category: Optional[str] = None, total_copies: Optional[int] = None,
                    reference_price: Decimal | float | str | None = None) -> Optional[Book]:
        """Update catalog fields of a book. Returns the updated book or None if not found."""
        log_request(logger, "PATCH", f"/api/books/{isbn}")
        isbn = self._normalize_isbn(isbn)
        if all(v is None for v in (title, author, category, total_copies, reference_price)):
            raise ValueError("Nothing to update. Provide at least one field.")

        try:
            with self.db.transaction() as conn:
                book = self.books.find_by_isbn(isbn, conn)
                if book is None:
                    return None
                if title is not None and title.strip():
                    book.title = TextValidator.sanitize_text(title)
                if author is not None and author.strip():
                    book.author = TextValidator.sanitize_text(author)
                if category is not None:
                    book.category = category.strip() or None
                if reference_price is not None:
                    book.reference_price = Decimal(str(reference_price))
                if total_copies is not None:
                    self._resize_stock(book, int(total_copies))
                self._validate_book(book)
                self.books.update(book, conn)
        except sqlite3.Error as e:
            logger.error(f"Error updating book {isbn}: {e}")
            raise DatabaseError("Error updating book") from e
        logger.info(f"Book updated: {isbn}")
        return book

    def activate_book(self, isbn: str) -> bool:
        return self._set_active(isbn, True)

    def deactivate_book(self, isbn: str) -> bool:
        return self._set_active(isbn, False)

    @translate_db_errors("Error computing statistics")
    def get_statistics(self) -> Dict[str, Any]:
        """Catalog statistics."""
        return self.books.statistics()

    # ------------------------- Helpers ------------------------- #
    @translate_db_errors("Error changing book status")
    def _set_active(self, isbn: str, active: bool) -> bool:
        isbn = self._normalize_isbn(isbn)
        log_request(logger, "PATCH", f"/api/books/{isbn}/{'activate' if active else 'deactivate'}")
        changed = self.books.set_active(isbn, active)
        if changed:
            logger.info(f"Book {'activated' if active else 'deactivated'}: {isbn}")
        return changed

    @staticmethod
    def _resize_stock(book: Book, new_total: int) -> None:
        """Change total copies, moving available copies by the same delta."""
        if new_total <= 0:
            raise ValueError("Total copies must be greater than 0")
        new_available = book.available_copies + (new_total - book.total_copies)
        if new_available < 0:
            raise StockInvariantError(
                f"Cannot reduce total copies of {book.isbn} to {new_total}: "
                f"{book.loaned_copies} copies are currently on loan."
            )
        book.total_copies = new_total
        book.available_copies = new_available

    @staticmethod
    def _validate_book(book: Book) -> None:
        if not book.isbn:
            raise ValueError("ISBN cannot be empty")
        if TextValidator.is_blank(book.title):
            raise ValueError("Title cannot be empty")
        if TextValidator.is_blank(book.author):
            raise ValueError("Author cannot be empty")
        if book.total_copies <= 0:
            raise ValueError("Total copies must be greater than 0")
        if not 0 <= book.available_copies <= book.total_copies:
            raise StockInvariantError("Available copies must be between 0 and total copies")
        if book.reference_price < 0:
            raise ValueError("Reference price cannot be negative")

    @staticmethod
    def _normalize_isbn(isbn: str) -> str:
        return ISBNValidator.normalize_isbn(isbn)
