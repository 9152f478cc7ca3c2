from datetime import date
from decimal import Decimal

import pytest

from libronova.config import Settings
from libronova.context import create_context

API_KEY = "test-api-key"
ADMIN_PASSWORD = "admin-pass"
TODAY = date(2024, 5, 20)


class FixedClock:
    """Callable standing in for date.today; tests move it with ``today``."""

    def __init__(self, today: date = TODAY):
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def settings(tmp_path, request):
    # A unique database file per test
    return Settings(
        database_file=str(tmp_path / f"test_{request.node.name}.db"),
        log_file=None,
        api_key=API_KEY,
        admin_username="admin",
        admin_password=ADMIN_PASSWORD,
        loan_period_days=7,
        fine_per_day=Decimal("1500"),
    )


@pytest.fixture
def ctx(settings, clock):
    return create_context(settings, clock=clock)


@pytest.fixture
def lib(ctx):
    return ctx.library


@pytest.fixture
def members(ctx):
    return ctx.members


@pytest.fixture
def circulation(ctx):
    return ctx.circulation


@pytest.fixture
def accounts(ctx):
    return ctx.accounts


@pytest.fixture
def member(members):
    return members.create_member("Ana Torres", "ana@example.com", phone="555-0101")
