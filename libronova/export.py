"""CSV reports of the catalog and of loans."""
import csv
import io
import logging
from datetime import date
from pathlib import Path
from typing import Callable, Iterable, List, TextIO

from libronova.book import Book
from libronova.loan import Loan

logger = logging.getLogger(__name__)

BOOK_HEADER = ["ISBN", "Title", "Author", "Category", "Total Copies", "Available Copies",
               "Reference Price", "Is Active", "Created At"]
LOAN_HEADER = ["Loan ID", "ISBN", "Member ID", "Loan Date", "Due Date", "Return Date",
               "Fine Amount", "Status", "Created At"]
OVERDUE_HEADER = ["Loan ID", "ISBN", "Member ID", "Loan Date", "Due Date", "Days Overdue",
                  "Fine Amount", "Status", "Created At"]


def export_books_catalog(books: Iterable[Book], stream: TextIO) -> int:
    writer = csv.writer(stream)
    writer.writerow(BOOK_HEADER)
    count = 0
    for book in books:
        writer.writerow([
            book.isbn, book.title, book.author, book.category or "",
            book.total_copies, book.available_copies, f"{book.reference_price:.2f}",
            "ACTIVE" if book.is_active else "INACTIVE", book.created_at or "",
        ])
        count += 1
    return count


def export_all_loans(loans: Iterable[Loan], stream: TextIO) -> int:
    writer = csv.writer(stream)
    writer.writerow(LOAN_HEADER)
    count = 0
    for loan in loans:
        writer.writerow([
            loan.loan_id, loan.isbn, loan.member_id, loan.loan_date.isoformat(), loan.due_date.isoformat(),
            loan.return_date.isoformat() if loan.return_date else "N/A",
            f"{loan.fine_amount:.2f}", loan.status.value, loan.created_at or "",
        ])
        count += 1
    return count


def export_overdue_loans(loans: Iterable[Loan], stream: TextIO, today: date, fine_per_day) -> int:
    """Overdue report; the fine column is what returning today would charge."""
    writer = csv.writer(stream)
    writer.writerow(OVERDUE_HEADER)
    count = 0
    for loan in loans:
        writer.writerow([
            loan.loan_id, loan.isbn, loan.member_id, loan.loan_date.isoformat(), loan.due_date.isoformat(),
            loan.days_overdue(today), f"{loan.calculate_fine(today, fine_per_day):.2f}",
            loan.status.value, loan.created_at or "",
        ])
        count += 1
    return count


def to_csv_string(exporter: Callable[..., int], rows: List, **kwargs) -> str:
    output = io.StringIO()
    exporter(rows, output, **kwargs)
    return output.getvalue()


def export_to_file(path: str, exporter: Callable[..., int], rows: List, **kwargs) -> int:
    """Write a report to ``path`` and return the number of records written."""
    target = Path(path)
    if target.parent and not target.parent.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", newline="", encoding="utf-8") as f:
        count = exporter(rows, f, **kwargs)
    logger.info(f"Exported {count} records to {target}")
    return count
