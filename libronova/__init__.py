"""LibroNova - Library Management Package

This package contains the application modules including:
- Circulation engine, loans and fines (circulation.py, fines.py)
- Catalog, member and account services (library.py, members.py, accounts.py)
- Data models (book.py, member.py, loan.py, user.py)
- Database layer (database.py, repositories.py) and wiring (context.py)
- API endpoints (api.py), CLI interface (main.py) and output helpers (ui_helpers.py)
"""

__version__ = "1.0.0"
