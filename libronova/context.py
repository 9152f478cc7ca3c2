from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from libronova.accounts import AccountService
from libronova.circulation import CirculationEngine
from libronova.config import Settings, load_settings
from libronova.database import Database
from libronova.library import Library
from libronova.members import MemberService


@dataclass
class AppContext:
    """Everything a front end needs, wired to one Database and one Settings."""
    settings: Settings
    db: Database
    library: Library
    members: MemberService
    circulation: CirculationEngine
    accounts: AccountService


def create_context(settings: Optional[Settings] = None, clock: Callable[[], date] = date.today) -> AppContext:
    settings = settings or load_settings()
    db = Database(settings.database_file)
    db.initialize()
    accounts = AccountService(db)
    accounts.ensure_admin(settings)
    return AppContext(
        settings=settings,
        db=db,
        library=Library(db),
        members=MemberService(db),
        circulation=CirculationEngine(db, settings, clock=clock),
        accounts=accounts,
    )
