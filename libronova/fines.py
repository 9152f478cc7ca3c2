"""Overdue fine policy.

Pure functions over calendar dates: no clock, no storage. Days are whole
calendar days, so the time a book comes back on its due date never matters.
"""
from datetime import date, timedelta
from decimal import Decimal


def due_date_for(loan_date: date, loan_period_days: int) -> date:
    return loan_date + timedelta(days=loan_period_days)


def overdue_days(due_date: date, today: date) -> int:
    """Whole days past due_date, never negative."""
    return max(0, (today - due_date).days)


def calculate_fine(due_date: date, today: date, per_day_rate: Decimal) -> Decimal:
    """Fine owed when returning on ``today``; zero unless today is after due_date."""
    days = overdue_days(due_date, today)
    if days == 0:
        return Decimal("0")
    return Decimal(days) * Decimal(per_day_rate)
