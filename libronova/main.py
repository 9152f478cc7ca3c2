import os
import subprocess
import sys
from decimal import Decimal
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from libronova.config import load_settings
from libronova.context import AppContext, create_context
from libronova.errors import (
    DuplicateEmailError,
    DuplicateIsbnError,
    DuplicateUsernameError,
    EntityInUseError,
    InvalidCredentialsError,
    LibraryError,
    PermissionDeniedError,
)
from libronova.export import (
    export_all_loans,
    export_books_catalog,
    export_overdue_loans,
    export_to_file,
)
from libronova.logging_config import configure_logging
from libronova.ui_helpers import (
    get_output_mode,
    print_books,
    print_loans,
    print_members,
    print_stats_result,
    set_output_mode,
)
from libronova.user import UserRole
from libronova.validators import ISBNValidator, parse_non_negative_decimal

console = Console()

# --- Typer CLI Application ---
app = typer.Typer(help="LibroNova library management CLI")
books_app = typer.Typer(help="Manage the book catalog")
members_app = typer.Typer(help="Manage library members")
loans_app = typer.Typer(help="Lend and return books")
users_app = typer.Typer(help="Manage staff accounts")
app.add_typer(books_app, name="books")
app.add_typer(members_app, name="members")
app.add_typer(loans_app, name="loans")
app.add_typer(users_app, name="users")


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)
    if ctx.obj is None:
        settings = load_settings()
        configure_logging(settings, console=settings.debug)
        ctx.obj = create_context(settings)


def _app(ctx: typer.Context) -> AppContext:
    return ctx.obj


def _fail(message: str) -> None:
    print(f"Error: {message}")
    raise typer.Exit(code=1)


# --- Books ---
@books_app.command("list")
def books_list(ctx: typer.Context, active: bool = typer.Option(False, "--active", help="Only active books")):
    """List all books."""
    print_books(_app(ctx).library.list_books(active_only=active))


@books_app.command("add")
def books_add(
    ctx: typer.Context,
    isbn: str,
    title: str,
    author: str,
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    copies: int = typer.Option(1, "--copies", "-n", help="Total copies"),
    price: str = typer.Option("0", "--price", help="Reference price"),
):
    """Add a book to the catalog."""
    if not ISBNValidator.is_valid_isbn(isbn):
        _fail(f"Invalid ISBN format: {isbn}")
    reference_price = parse_non_negative_decimal(price)
    if reference_price is None:
        _fail(f"Invalid price: {price}")
    try:
        book = _app(ctx).library.create_book(
            isbn, title, author, category=category, total_copies=copies, reference_price=reference_price
        )
    except DuplicateIsbnError as e:
        _fail(str(e))
    except ValueError as e:
        _fail(str(e))
    print(f"Successfully added: {book.title} by {book.author}")


@books_app.command("find")
def books_find(ctx: typer.Context, isbn: str):
    """Find a book by ISBN and show its details."""
    book = _app(ctx).library.find_book(isbn)
    if not book:
        _fail(f"Book with ISBN {isbn} not found.")
    if get_output_mode() == "json":
        print_books([book])
        return
    print("Book Found")
    print(f"Title: {book.title}")
    print(f"Author: {book.author}")
    print(f"ISBN: {book.isbn}")
    print(f"Category: {book.category or '-'}")
    print(f"Copies: {book.available_copies}/{book.total_copies}")
    print(f"Status: {'ACTIVE' if book.is_active else 'INACTIVE'}")


@books_app.command("search")
def books_search(
    ctx: typer.Context,
    query: Optional[str] = typer.Argument(None, help="Text matched against title, author and ISBN"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
):
    """Search books by text, category or author."""
    lib = _app(ctx).library
    if category:
        books = lib.list_by_category(category)
    elif author:
        books = lib.list_by_author(author)
    elif query:
        books = lib.search_books(query)
    else:
        _fail("Provide a query, --category or --author.")
    print_books(books)


@books_app.command("update")
def books_update(
    ctx: typer.Context,
    isbn: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    category: Optional[str] = typer.Option(None, "--category"),
    copies: Optional[int] = typer.Option(None, "--copies", help="New total copies"),
    price: Optional[str] = typer.Option(None, "--price"),
):
    """Update catalog fields of a book."""
    reference_price: Optional[Decimal] = None
    if price is not None:
        reference_price = parse_non_negative_decimal(price)
        if reference_price is None:
            _fail(f"Invalid price: {price}")
    try:
        book = _app(ctx).library.update_book(
            isbn, title=title, author=author, category=category,
            total_copies=copies, reference_price=reference_price,
        )
    except ValueError as e:
        _fail(str(e))
    if book is None:
        _fail(f"Book with ISBN {isbn} not found.")
    print(f"Book updated: {book.title} ({book.available_copies}/{book.total_copies})")


@books_app.command("remove")
def books_remove(ctx: typer.Context, isbn: str):
    """Remove a book by ISBN."""
    try:
        removed = _app(ctx).library.remove_book(isbn)
    except EntityInUseError as e:
        _fail(str(e))
    if not removed:
        _fail(f"Book with ISBN {isbn} not found.")
    print(f"Book with ISBN {isbn} has been removed.")


@books_app.command("activate")
def books_activate(ctx: typer.Context, isbn: str):
    if not _app(ctx).library.activate_book(isbn):
        _fail(f"Book with ISBN {isbn} not found.")
    print(f"Book {isbn} activated.")


@books_app.command("deactivate")
def books_deactivate(ctx: typer.Context, isbn: str):
    if not _app(ctx).library.deactivate_book(isbn):
        _fail(f"Book with ISBN {isbn} not found.")
    print(f"Book {isbn} deactivated.")


# --- Members ---
@members_app.command("list")
def members_list(ctx: typer.Context, active: bool = typer.Option(False, "--active", help="Only active members")):
    """List members."""
    print_members(_app(ctx).members.list_members(active_only=active))


@members_app.command("add")
def members_add(
    ctx: typer.Context,
    name: str,
    email: str,
    phone: Optional[str] = typer.Option(None, "--phone"),
    address: Optional[str] = typer.Option(None, "--address"),
):
    """Register a new member."""
    try:
        member = _app(ctx).members.create_member(name, email, phone=phone, address=address)
    except DuplicateEmailError as e:
        _fail(str(e))
    except ValueError as e:
        _fail(str(e))
    print(f"Member registered: {member.name} (ID {member.member_id})")


@members_app.command("find")
def members_find(ctx: typer.Context, member_id: int):
    member = _app(ctx).members.find_member(member_id)
    if not member:
        _fail(f"Member {member_id} not found.")
    print_members([member])


@members_app.command("update")
def members_update(
    ctx: typer.Context,
    member_id: int,
    name: Optional[str] = typer.Option(None, "--name"),
    email: Optional[str] = typer.Option(None, "--email"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    address: Optional[str] = typer.Option(None, "--address"),
):
    """Update a member's contact details."""
    try:
        member = _app(ctx).members.update_member(member_id, name=name, email=email, phone=phone, address=address)
    except DuplicateEmailError as e:
        _fail(str(e))
    except ValueError as e:
        _fail(str(e))
    if member is None:
        _fail(f"Member {member_id} not found.")
    print(f"Member updated: {member.name} <{member.email}>")


@members_app.command("remove")
def members_remove(ctx: typer.Context, member_id: int):
    try:
        removed = _app(ctx).members.delete_member(member_id)
    except EntityInUseError as e:
        _fail(str(e))
    if not removed:
        _fail(f"Member {member_id} not found.")
    print(f"Member {member_id} has been removed.")


@members_app.command("activate")
def members_activate(ctx: typer.Context, member_id: int):
    if not _app(ctx).members.activate_member(member_id):
        _fail(f"Member {member_id} not found.")
    print(f"Member {member_id} activated.")


@members_app.command("deactivate")
def members_deactivate(ctx: typer.Context, member_id: int):
    if not _app(ctx).members.deactivate_member(member_id):
        _fail(f"Member {member_id} not found.")
    print(f"Member {member_id} deactivated.")


# --- Loans ---
@loans_app.command("create")
def loans_create(ctx: typer.Context, isbn: str, member_id: int):
    """Lend one copy of a book to a member."""
    result = _app(ctx).circulation.create_loan(isbn, member_id)
    if not result.ok:
        _fail(f"{result.message} ({result.error.value})")
    loan = result.loan
    print(f"Loan created: #{loan.loan_id} due {loan.due_date.isoformat()}")


@loans_app.command("return")
def loans_return(
    ctx: typer.Context,
    loan_id: int,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the fine confirmation"),
):
    """Return a loan, confirming any overdue fine first."""
    circulation = _app(ctx).circulation
    preview = circulation.preview_fine(loan_id)
    if not preview.ok:
        _fail(f"{preview.message} ({preview.error.value})")
    if preview.fine_amount > 0 and not yes:
        console.print(Panel.fit(
            f"[bold]Days overdue:[/] {preview.days_overdue}\n[bold]Fine:[/] {preview.fine_amount:.2f}",
            title="⚠️  Overdue loan", border_style="yellow",
        ))
        if not Confirm.ask("Register the return and charge this fine?"):
            print("Return cancelled.")
            raise typer.Exit()

    result = circulation.return_loan(loan_id)
    if not result.ok:
        _fail(f"{result.message} ({result.error.value})")
    print(f"Loan #{loan_id} returned. Fine: {result.fine_amount:.2f}")


@loans_app.command("list")
def loans_list(
    ctx: typer.Context,
    member_id: Optional[int] = typer.Option(None, "--member", "-m"),
    active: bool = typer.Option(False, "--active", help="Only active loans"),
):
    """List loans, optionally for one member."""
    circulation = _app(ctx).circulation
    if member_id is not None:
        loans = circulation.loans_for_member(member_id, active_only=active)
    elif active:
        loans = circulation.active_loans()
    else:
        loans = circulation.list_loans()
    print_loans(loans, today=circulation.clock())


@loans_app.command("overdue")
def loans_overdue(ctx: typer.Context):
    """List active loans past their due date."""
    circulation = _app(ctx).circulation
    print_loans(circulation.overdue_loans(), today=circulation.clock())


@loans_app.command("fine")
def loans_fine(ctx: typer.Context, loan_id: int):
    """Show what returning a loan today would charge."""
    preview = _app(ctx).circulation.preview_fine(loan_id)
    if not preview.ok:
        _fail(f"{preview.message} ({preview.error.value})")
    print(f"Loan #{loan_id}: {preview.days_overdue} days overdue, fine {preview.fine_amount:.2f}")


# --- Reports ---
@app.command("export")
def cli_export(
    ctx: typer.Context,
    report: str = typer.Argument("books", help="books | loans | overdue"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Target CSV file"),
):
    """Export a CSV report."""
    app_ctx = _app(ctx)
    target = file or f"{report}_export.csv"
    if report == "books":
        count = export_to_file(target, export_books_catalog, app_ctx.library.list_books())
    elif report == "loans":
        count = export_to_file(target, export_all_loans, app_ctx.circulation.list_loans())
    elif report == "overdue":
        count = export_to_file(
            target, export_overdue_loans, app_ctx.circulation.overdue_loans(),
            today=app_ctx.circulation.clock(), fine_per_day=app_ctx.settings.fine_per_day,
        )
    else:
        _fail(f"Unsupported report: {report}. Use books, loans or overdue.")
    print(f"Exported {count} records to {target}")


@app.command("stats")
def cli_stats(ctx: typer.Context):
    """Show library statistics."""
    app_ctx = _app(ctx)
    stats = dict(app_ctx.library.get_statistics())
    stats.update(app_ctx.circulation.statistics())
    print_stats_result(stats)


# --- Accounts ---
@app.command("login")
def cli_login(
    ctx: typer.Context,
    username: str = typer.Option(..., "--username", "-u", prompt=True),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True),
):
    """Check staff credentials."""
    try:
        user = _app(ctx).accounts.login(username, password)
    except InvalidCredentialsError as e:
        _fail(str(e))
    print(f"Welcome, {user.username} ({user.role.value})")


@users_app.command("add")
def users_add(
    ctx: typer.Context,
    username: str,
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
    role: UserRole = typer.Option(UserRole.ASSISTANT, "--role", case_sensitive=False),
    admin_user: str = typer.Option(..., "--admin-user", prompt="Administrator username"),
    admin_password: str = typer.Option(..., "--admin-password", prompt="Administrator password", hide_input=True),
):
    """Create a staff account (administrators only)."""
    accounts = _app(ctx).accounts
    try:
        acting = accounts.login(admin_user, admin_password)
        user = accounts.create_user(acting, username, password, role=role)
    except (InvalidCredentialsError, PermissionDeniedError, DuplicateUsernameError) as e:
        _fail(str(e))
    except ValueError as e:
        _fail(str(e))
    print(f"User created: {user.username} ({user.role.value})")


@app.command("serve")
def cli_serve(
    ctx: typer.Context,
    reload: bool = typer.Option(False, "--reload", help="Restart the server on code changes"),
    timeout: int = typer.Option(0, "--timeout", help="Seconds to run before stopping (0 = no timeout)"),
):
    """Start the HTTP API with uvicorn."""
    settings = _app(ctx).settings
    print(f"Starting {settings.app_name} API on http://{settings.api_host}:{settings.api_port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "libronova.api:create_app",
        "--factory",
        "--host", settings.api_host,
        "--port", str(settings.api_port),
    ]
    if reload:
        args.append("--reload")
    try:
        if timeout and timeout > 0:
            proc = subprocess.Popen(args, start_new_session=os.name != "nt")
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
        else:
            subprocess.run(args)
    except FileNotFoundError:
        _fail("`uvicorn` could not be started. Make sure it is installed.")


def main() -> None:
    try:
        app()
    except LibraryError as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
