from decimal import Decimal

import pytest

from libronova.config import (
    DEFAULT_FINE_PER_DAY,
    DEFAULT_LOAN_PERIOD_DAYS,
    MAX_LOAN_PERIOD_DAYS,
    Settings,
    load_settings,
)


def test_defaults(monkeypatch):
    for name in ("LOAN_PERIOD_DAYS", "FINE_PER_DAY", "LIBRARY_DB_FILE", "APP_NAME"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.loan_period_days == 7
    assert settings.fine_per_day == Decimal("1500")
    assert settings.database_file == "libronova.db"
    assert settings.app_name == "LibroNova"


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("LOAN_PERIOD_DAYS", "14")
    monkeypatch.setenv("FINE_PER_DAY", "250.5")
    monkeypatch.setenv("LIBRARY_DB_FILE", str(tmp_path / "x.db"))

    settings = load_settings(env_file=str(tmp_path / "missing.env"))

    assert settings.loan_period_days == 14
    assert settings.fine_per_day == Decimal("250.5")
    assert settings.database_file.endswith("x.db")


def test_invalid_values_fall_back(monkeypatch):
    monkeypatch.setenv("LOAN_PERIOD_DAYS", "seven")
    monkeypatch.setenv("FINE_PER_DAY", "-3")

    settings = Settings()

    assert settings.loan_period_days == DEFAULT_LOAN_PERIOD_DAYS
    assert settings.fine_per_day == DEFAULT_FINE_PER_DAY


def test_explicit_overrides_win(monkeypatch):
    monkeypatch.setenv("LOAN_PERIOD_DAYS", "30")
    assert load_settings(loan_period_days=3).loan_period_days == 3


@pytest.mark.parametrize("raw", ["NaN", "sNaN", "Infinity", "-Infinity"])
def test_non_finite_fine_falls_back(monkeypatch, tmp_path, raw):
    monkeypatch.setenv("FINE_PER_DAY", raw)

    settings = load_settings(env_file=str(tmp_path / "missing.env"))

    assert settings.fine_per_day == DEFAULT_FINE_PER_DAY
    assert settings.fine_per_day.is_finite()


def test_non_finite_fine_override_falls_back():
    assert Settings(fine_per_day=Decimal("Infinity")).fine_per_day == DEFAULT_FINE_PER_DAY


def test_huge_loan_period_falls_back(monkeypatch):
    monkeypatch.setenv("LOAN_PERIOD_DAYS", str(10 ** 7))

    assert Settings().loan_period_days == DEFAULT_LOAN_PERIOD_DAYS
    assert Settings(loan_period_days=MAX_LOAN_PERIOD_DAYS).loan_period_days == MAX_LOAN_PERIOD_DAYS
