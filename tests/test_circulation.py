import sqlite3
import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from libronova.circulation import CirculationError
from libronova.loan import LoanStatus
from libronova.repositories import BookRepository, LoanRepository


@pytest.fixture
def book(lib):
    return lib.create_book("111", "Cien años de soledad", "Gabriel García Márquez", category="Novel", total_copies=2)


def test_create_loan_decrements_stock_and_sets_due_date(circulation, lib, book, member, clock):
    result = circulation.create_loan("111", member.member_id)

    assert result.ok
    loan = result.loan
    assert loan.loan_id is not None
    assert loan.status is LoanStatus.ACTIVE
    assert loan.loan_date == clock.today
    assert loan.due_date == clock.today + timedelta(days=7)
    assert lib.find_book("111").available_copies == 1


def test_return_overdue_loan_charges_fine_and_restores_stock(circulation, lib, book, member, clock):
    today = clock.today
    clock.today = today - timedelta(days=10)
    loan = circulation.create_loan("111", member.member_id).loan
    assert loan.due_date == today - timedelta(days=3)

    clock.today = today
    result = circulation.return_loan(loan.loan_id)

    assert result.ok
    assert result.fine_amount == Decimal("4500")
    assert result.days_overdue == 3
    stored = circulation.find_loan(loan.loan_id)
    assert stored.status is LoanStatus.RETURNED
    assert stored.return_date == today
    assert stored.fine_amount == Decimal("4500")
    assert lib.find_book("111").available_copies == 2


def test_return_on_due_date_has_no_fine(circulation, book, member, clock):
    loan = circulation.create_loan("111", member.member_id).loan
    clock.today = loan.due_date

    result = circulation.return_loan(loan.loan_id)

    assert result.ok
    assert result.fine_amount == Decimal("0")
    assert result.days_overdue == 0


def test_fine_uses_configured_rate(ctx, circulation, book, member, clock):
    ctx.settings.fine_per_day = Decimal("250.50")
    loan = circulation.create_loan("111", member.member_id).loan
    clock.today = loan.due_date + timedelta(days=2)

    result = circulation.return_loan(loan.loan_id)

    assert result.fine_amount == Decimal("501.00")


def test_create_loan_unknown_book(circulation, member):
    result = circulation.create_loan("999", member.member_id)

    assert not result.ok
    assert result.error is CirculationError.NOT_FOUND
    assert result.loan is None


def test_create_loan_unknown_member(circulation, lib, book):
    result = circulation.create_loan("111", 4242)

    assert result.error is CirculationError.NOT_FOUND
    assert lib.find_book("111").available_copies == 2


def test_create_loan_inactive_book(circulation, lib, book, member):
    lib.deactivate_book("111")

    result = circulation.create_loan("111", member.member_id)

    assert result.error is CirculationError.INVALID_OPERATION
    assert lib.find_book("111").available_copies == 2


def test_create_loan_inactive_member(circulation, members, lib, book, member):
    members.deactivate_member(member.member_id)

    result = circulation.create_loan("111", member.member_id)

    assert result.error is CirculationError.INACTIVE_MEMBER
    assert circulation.list_loans() == []
    assert lib.find_book("111").available_copies == 2


def test_create_loan_without_stock(circulation, members, lib, member):
    lib.create_book("222", "Pedro Páramo", "Juan Rulfo", total_copies=1)
    other = members.create_member("Luis Vega", "luis@example.com")
    assert circulation.create_loan("222", member.member_id).ok

    result = circulation.create_loan("222", other.member_id)

    assert result.error is CirculationError.INSUFFICIENT_STOCK
    assert lib.find_book("222").available_copies == 0
    assert len(circulation.list_loans()) == 1


def test_return_unknown_loan(circulation):
    result = circulation.return_loan(9999)

    assert not result.ok
    assert result.error is CirculationError.NOT_FOUND


def test_return_twice_is_rejected_without_touching_stock(circulation, lib, book, member):
    loan = circulation.create_loan("111", member.member_id).loan
    assert circulation.return_loan(loan.loan_id).ok

    result = circulation.return_loan(loan.loan_id)

    assert result.error is CirculationError.INVALID_OPERATION
    assert result.message == "Loan is already returned"
    assert lib.find_book("111").available_copies == 2


def test_return_never_pushes_stock_above_total(circulation, ctx, lib, book, member):
    loan = circulation.create_loan("111", member.member_id).loan
    # Stock drifted back to full outside circulation
    BookRepository(ctx.db).update_available_copies("111", 2)

    result = circulation.return_loan(loan.loan_id)

    assert result.ok
    assert lib.find_book("111").available_copies == 2


def test_create_loan_rolls_back_when_stock_write_fails(circulation, lib, book, member, monkeypatch):
    def broken(self, isbn, new_value, conn=None):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(BookRepository, "update_available_copies", broken)

    result = circulation.create_loan("111", member.member_id)

    assert result.error is CirculationError.PERSISTENCE_FAILURE
    monkeypatch.undo()
    assert circulation.list_loans() == []
    assert lib.find_book("111").available_copies == 2


def test_return_rolls_back_when_stock_write_fails(circulation, lib, book, member, clock, monkeypatch):
    loan = circulation.create_loan("111", member.member_id).loan
    clock.today = loan.due_date + timedelta(days=1)

    def broken(self, isbn, new_value, conn=None):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(BookRepository, "update_available_copies", broken)
    result = circulation.return_loan(loan.loan_id)
    monkeypatch.undo()

    assert result.error is CirculationError.PERSISTENCE_FAILURE
    stored = circulation.find_loan(loan.loan_id)
    assert stored.status is LoanStatus.ACTIVE
    assert stored.return_date is None
    assert stored.fine_amount == Decimal("0")
    assert lib.find_book("111").available_copies == 1


def test_return_rolls_back_when_loan_update_fails(circulation, lib, book, member, monkeypatch):
    loan = circulation.create_loan("111", member.member_id).loan

    def broken(self, loan_id, fine_amount, return_date, conn):
        raise sqlite3.OperationalError("boom")

    monkeypatch.setattr(LoanRepository, "mark_returned", broken)
    result = circulation.return_loan(loan.loan_id)
    monkeypatch.undo()

    assert result.error is CirculationError.PERSISTENCE_FAILURE
    assert circulation.find_loan(loan.loan_id).is_active
    assert lib.find_book("111").available_copies == 1


def test_preview_fine_does_not_write(circulation, lib, book, member, clock):
    loan = circulation.create_loan("111", member.member_id).loan
    clock.today = loan.due_date + timedelta(days=4)

    preview = circulation.preview_fine(loan.loan_id)

    assert preview.ok
    assert preview.fine_amount == Decimal("6000")
    assert preview.days_overdue == 4
    assert circulation.find_loan(loan.loan_id).is_active
    assert lib.find_book("111").available_copies == 1


def test_preview_fine_of_returned_loan(circulation, book, member):
    loan = circulation.create_loan("111", member.member_id).loan
    circulation.return_loan(loan.loan_id)

    preview = circulation.preview_fine(loan.loan_id)

    assert preview.error is CirculationError.INVALID_OPERATION


def test_overdue_and_member_queries(circulation, members, lib, book, member, clock):
    lib.create_book("9780140449136", "Crime and Punishment", "Fyodor Dostoevsky", total_copies=3)
    other = members.create_member("Luis Vega", "luis@example.com")
    today = clock.today

    clock.today = today - timedelta(days=20)
    late = circulation.create_loan("111", member.member_id).loan
    clock.today = today
    fresh = circulation.create_loan("9780140449136", other.member_id).loan

    assert [l.loan_id for l in circulation.overdue_loans()] == [late.loan_id]
    assert {l.loan_id for l in circulation.active_loans()} == {late.loan_id, fresh.loan_id}
    assert [l.loan_id for l in circulation.loans_for_member(other.member_id)] == [fresh.loan_id]
    assert [l.loan_id for l in circulation.loans_for_book("111")] == [late.loan_id]

    circulation.return_loan(late.loan_id)
    assert circulation.loans_for_member(member.member_id, active_only=True) == []

    stats = circulation.statistics()
    assert stats["total_loans"] == 2
    assert stats["active_loans"] == 1
    assert stats["overdue_loans"] == 0
    assert stats["fines_collected"] == Decimal("1500") * 13


def test_concurrent_loans_never_oversell_last_copy(circulation, members, lib):
    lib.create_book("333", "Rayuela", "Julio Cortázar", total_copies=1)
    borrowers = [members.create_member(f"Reader {i}", f"reader{i}@example.com") for i in range(8)]
    barrier = threading.Barrier(len(borrowers))
    results = []

    def borrow(member_id):
        barrier.wait()
        results.append(circulation.create_loan("333", member_id))

    threads = [threading.Thread(target=borrow, args=(m.member_id,)) for m in borrowers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == len(borrowers)
    assert sum(1 for r in results if r.ok) == 1
    assert all(r.error is CirculationError.INSUFFICIENT_STOCK for r in results if not r.ok)
    assert lib.find_book("333").available_copies == 0
    assert len(circulation.loans_for_book("333")) == 1
