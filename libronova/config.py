import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_LOAN_PERIOD_DAYS = 7
DEFAULT_FINE_PER_DAY = Decimal("1500")
# Ten years; keeps due dates far from date.max
MAX_LOAN_PERIOD_DAYS = 3650


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        value = None
    if value is None or not value.is_finite():
        logger.warning(f"Invalid decimal for {name}: {raw!r}, using {default}")
        return default
    return value


@dataclass
class Settings:
    # API settings
    api_host: str = field(default_factory=lambda: os.getenv("API_HOST", "127.0.0.1"))
    api_port: int = field(default_factory=lambda: _env_int("API_PORT", 8000))
    api_key: str = field(default_factory=lambda: os.getenv("API_KEY", "super-secret-key"))

    # Database settings
    database_file: str = field(default_factory=lambda: os.getenv("LIBRARY_DB_FILE", "libronova.db"))

    # Circulation settings
    loan_period_days: int = field(default_factory=lambda: _env_int("LOAN_PERIOD_DAYS", DEFAULT_LOAN_PERIOD_DAYS))
    fine_per_day: Decimal = field(default_factory=lambda: _env_decimal("FINE_PER_DAY", DEFAULT_FINE_PER_DAY))

    # Bootstrap administrator, created on first start when no user exists
    admin_username: str = field(default_factory=lambda: os.getenv("ADMIN_USERNAME", "admin"))
    admin_password: Optional[str] = field(default_factory=lambda: os.getenv("ADMIN_PASSWORD"))

    # Logging settings
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE", "app.log"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Application settings
    app_name: str = field(default_factory=lambda: os.getenv("APP_NAME", "LibroNova"))
    app_version: str = field(default_factory=lambda: os.getenv("APP_VERSION", "1.0.0"))
    debug: bool = field(default_factory=lambda: _env_flag("DEBUG"))
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    def __post_init__(self) -> None:
        if not 1 <= self.loan_period_days <= MAX_LOAN_PERIOD_DAYS:
            logger.warning(f"Loan period must be between 1 and {MAX_LOAN_PERIOD_DAYS}, got {self.loan_period_days}; using {DEFAULT_LOAN_PERIOD_DAYS}")
            self.loan_period_days = DEFAULT_LOAN_PERIOD_DAYS
        self.fine_per_day = Decimal(str(self.fine_per_day))
        if not self.fine_per_day.is_finite() or self.fine_per_day < 0:
            logger.warning(f"Fine per day must be a finite non-negative amount, got {self.fine_per_day}; using {DEFAULT_FINE_PER_DAY}")
            self.fine_per_day = DEFAULT_FINE_PER_DAY


def load_settings(env_file: Optional[str] = None, **overrides) -> Settings:
    """Read .env (if present) and the process environment into a new Settings.

    Keyword overrides win over the environment, which is how tests and
    embedding callers pin values such as the database file.
    """
    load_dotenv(env_file)
    return Settings(**overrides)
