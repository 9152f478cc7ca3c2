import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

# Seconds a connection waits on a locked database before raising
BUSY_TIMEOUT = 5.0


class Database:
    """Owns the SQLite file and hands out connections and transactions.

    One instance is built at startup and passed to every repository and
    service; nothing in the package reaches for a module-level connection.
    """

    def __init__(self, db_file: str) -> None:
        self.db_file = db_file

    def connect(self) -> sqlite3.Connection:
        """Open a new connection with foreign keys enforced."""
        # isolation_level=None: transactions are opened explicitly by transaction()
        conn = sqlite3.connect(self.db_file, timeout=BUSY_TIMEOUT, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Short-lived autocommit connection for reads and single statements."""
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Scope a write transaction.

        BEGIN IMMEDIATE takes SQLite's write lock up front, so a
        check-then-update on a row cannot interleave with another writer.
        Commits on normal exit, rolls back on any exception, and always
        closes the connection.
        """
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BaseException:
            if conn.in_transaction:
                conn.rollback()
            logger.debug("Transaction rolled back")
            raise
        finally:
            conn.close()

    def ping(self) -> bool:
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1")
            return True
        except sqlite3.Error:
            return False

    def create_tables(self) -> None:
        """Create the schema if it does not exist yet."""
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    isbn TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    category TEXT,
                    total_copies INTEGER NOT NULL CHECK(total_copies >= 0),
                    available_copies INTEGER NOT NULL
                        CHECK(available_copies >= 0 AND available_copies <= total_copies),
                    reference_price TEXT NOT NULL DEFAULT '0',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS members (
                    member_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    phone TEXT,
                    address TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # Loans hold weak references: deleting a referenced book or member is refused
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS loans (
                    loan_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    isbn TEXT NOT NULL,
                    member_id INTEGER NOT NULL,
                    loan_date TEXT NOT NULL,
                    due_date TEXT NOT NULL,
                    return_date TEXT,
                    fine_amount TEXT NOT NULL DEFAULT '0',
                    status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK(status IN ('ACTIVE', 'RETURNED')),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (isbn) REFERENCES books(isbn) ON DELETE RESTRICT,
                    FOREIGN KEY (member_id) REFERENCES members(member_id) ON DELETE RESTRICT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'ASSISTANT' CHECK(role IN ('ADMIN', 'ASSISTANT')),
                    status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK(status IN ('ACTIVE', 'INACTIVE')),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_category ON books(category)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_isbn ON loans(isbn)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_member_id ON loans(member_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_status_due ON loans(status, due_date)")

    def initialize(self) -> None:
        """Create tables; safe to call on every start."""
        self.create_tables()
        logger.debug(f"Database ready at {self.db_file}")
