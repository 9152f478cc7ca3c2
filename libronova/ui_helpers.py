import os
import json
from typing import List, Any, Dict

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from libronova.book import Book
from libronova.loan import Loan
from libronova.member import Member

# Environment variable holding the CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIBRONOVA_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _dump(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str))


def print_books(books: List[Book]) -> None:
    """Print books in the current output mode.
    - plain: 'ISBN - Title by Author (available/total)' lines, or 'No books in library.'
    - json: list of book dicts
    - rich: Rich table
    """
    if not books:
        print("No books in library.")
        return

    mode = get_output_mode()
    if mode == "json":
        _dump([b.to_dict() for b in books])
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Category")
        table.add_column("Available", justify="right")
        table.add_column("Status")
        for b in books:
            table.add_row(
                b.isbn, b.title, b.author, b.category or "-",
                f"{b.available_copies}/{b.total_copies}",
                "[green]ACTIVE[/]" if b.is_active else "[red]INACTIVE[/]",
            )
        _console.print(table)
    else:
        for b in books:
            suffix = "" if b.is_active else " [inactive]"
            print(f"{b.isbn} - {b.title} by {b.author} ({b.available_copies}/{b.total_copies}){suffix}")


def print_members(members: List[Member]) -> None:
    if not members:
        print("No members registered.")
        return

    mode = get_output_mode()
    if mode == "json":
        _dump([m.to_dict() for m in members])
    elif mode == "rich":
        table = Table(title="👥 Members", show_lines=True, header_style="bold cyan")
        table.add_column("ID", justify="right", style="magenta")
        table.add_column("Name")
        table.add_column("Email")
        table.add_column("Phone")
        table.add_column("Status")
        for m in members:
            table.add_row(
                str(m.member_id), m.name, m.email, m.phone or "-",
                "[green]ACTIVE[/]" if m.is_active else "[red]INACTIVE[/]",
            )
        _console.print(table)
    else:
        for m in members:
            suffix = "" if m.is_active else " [inactive]"
            print(f"{m.member_id} - {m.name} <{m.email}>{suffix}")


def print_loans(loans: List[Loan], today=None) -> None:
    """Print loans; when ``today`` is given, overdue days are shown as well."""
    if not loans:
        print("No loans found.")
        return

    mode = get_output_mode()
    if mode == "json":
        payload = []
        for loan in loans:
            data = loan.to_dict()
            if today is not None:
                data["days_overdue"] = loan.days_overdue(today)
            payload.append(data)
        _dump(payload)
    elif mode == "rich":
        table = Table(title="🔖 Loans", show_lines=True, header_style="bold cyan")
        table.add_column("ID", justify="right", style="magenta")
        table.add_column("ISBN")
        table.add_column("Member", justify="right")
        table.add_column("Loan Date")
        table.add_column("Due Date")
        table.add_column("Returned")
        table.add_column("Fine", justify="right")
        table.add_column("Status")
        for loan in loans:
            overdue = today is not None and loan.is_overdue(today)
            table.add_row(
                str(loan.loan_id), loan.isbn, str(loan.member_id),
                loan.loan_date.isoformat(),
                f"[red]{loan.due_date.isoformat()}[/]" if overdue else loan.due_date.isoformat(),
                loan.return_date.isoformat() if loan.return_date else "-",
                f"{loan.fine_amount:.2f}", loan.status.value,
            )
        _console.print(table)
    else:
        for loan in loans:
            line = (f"#{loan.loan_id} {loan.isbn} -> member {loan.member_id} "
                    f"({loan.loan_date.isoformat()} to {loan.due_date.isoformat()}) {loan.status.value}")
            if loan.return_date:
                line += f" returned {loan.return_date.isoformat()} fine {loan.fine_amount:.2f}"
            elif today is not None and loan.is_overdue(today):
                line += f" overdue {loan.days_overdue(today)} days"
            print(line)


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode.
    - plain: one 'Label: value' line per metric
    - json: JSON object
    - rich: Panel with the main metrics
    """
    if not stats:
        print("No statistics available.")
        return

    labels = {
        "total_books": "Total Books",
        "unique_authors": "Unique Authors",
        "total_copies": "Total Copies",
        "available_copies": "Available Copies",
        "active_loans": "Active Loans",
        "overdue_loans": "Overdue Loans",
        "fines_collected": "Fines Collected",
    }
    mode = get_output_mode()
    if mode == "json":
        _dump({key: stats.get(key, 0) for key in labels})
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels.items())
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, label in labels.items():
            print(f"{label}: {stats.get(key, 0)}")
