import logging
import secrets
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader, HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field

from libronova.circulation import CirculationError, ReturnResult
from libronova.context import AppContext, create_context
from libronova.errors import (
    DatabaseError,
    DuplicateEmailError,
    DuplicateIsbnError,
    DuplicateUsernameError,
    EntityInUseError,
    InvalidCredentialsError,
    PermissionDeniedError,
    StockInvariantError,
)
from libronova.export import export_all_loans, export_books_catalog, export_overdue_loans, to_csv_string
from libronova.user import User, UserRole
from libronova.validators import ISBNValidator

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    CirculationError.NOT_FOUND: 404,
    CirculationError.INVALID_OPERATION: 409,
    CirculationError.INSUFFICIENT_STOCK: 409,
    CirculationError.INACTIVE_MEMBER: 409,
    CirculationError.PERSISTENCE_FAILURE: 500,
}


# --- Models ---
class BookModel(BaseModel):
    isbn: str
    title: str
    author: str
    category: Optional[str] = None
    total_copies: int
    available_copies: int
    reference_price: Decimal
    is_active: bool
    created_at: Optional[str] = None


class BookCreateModel(BaseModel):
    isbn: str
    title: str
    author: str
    category: Optional[str] = None
    total_copies: int = Field(1, gt=0)
    reference_price: Decimal = Field(Decimal("0"), ge=0)


class BookUpdateModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    total_copies: Optional[int] = Field(None, gt=0)
    reference_price: Optional[Decimal] = Field(None, ge=0)


class MemberModel(BaseModel):
    member_id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_at: Optional[str] = None


class MemberCreateModel(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None


class MemberUpdateModel(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class LoanModel(BaseModel):
    loan_id: int
    isbn: str
    member_id: int
    loan_date: date
    due_date: date
    return_date: Optional[date] = None
    fine_amount: Decimal
    status: str
    created_at: Optional[str] = None


class LoanCreateModel(BaseModel):
    isbn: str
    member_id: int = Field(..., gt=0)


class FineModel(BaseModel):
    loan: LoanModel
    days_overdue: int
    fine_amount: Decimal


class StatsModel(BaseModel):
    total_books: int
    unique_authors: int
    total_copies: int
    available_copies: int
    active_loans: int
    overdue_loans: int
    fines_collected: Decimal


class LoginModel(BaseModel):
    username: str
    password: str


class UserModel(BaseModel):
    user_id: int
    username: str
    role: str
    status: str
    created_at: Optional[str] = None


class UserCreateModel(BaseModel):
    username: str
    password: str
    role: UserRole = UserRole.ASSISTANT


def _csv_response(content: str, prefix: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
        },
    )


def _fine_model(result: ReturnResult) -> FineModel:
    return FineModel(
        loan=LoanModel(**result.loan.to_dict()),
        days_overdue=result.days_overdue,
        fine_amount=result.fine_amount,
    )


def _raise_for(error: CirculationError, message: str) -> None:
    raise HTTPException(status_code=ERROR_STATUS[error], detail={"error": error.value, "message": message})


def create_app(ctx: Optional[AppContext] = None) -> FastAPI:
    """Build the API around an application context (a fresh one from the environment by default)."""
    ctx = ctx or create_context()
    settings = ctx.settings

    app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version)
    app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request, exc: DatabaseError):
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    # --- Security ---
    api_key_header = APIKeyHeader(name="X-API-Key")
    basic = HTTPBasic()

    def get_api_key(api_key: str = Security(api_key_header)):
        """Dependency validating the API key on every mutation."""
        if secrets.compare_digest(api_key.encode("utf-8"), settings.api_key.encode("utf-8")):
            return api_key
        raise HTTPException(status_code=403, detail="Could not validate credentials")

    def get_current_user(credentials: HTTPBasicCredentials = Depends(basic)) -> User:
        try:
            return ctx.accounts.login(credentials.username, credentials.password)
        except InvalidCredentialsError as e:
            raise HTTPException(status_code=401, detail=str(e), headers={"WWW-Authenticate": "Basic"})

    guarded = [Depends(get_api_key)]

    # --- Health ---
    @app.get("/health")
    def health():
        return {
            "status": "healthy" if ctx.db.ping() else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "app": settings.app_name,
            "version": settings.app_version,
        }

    @app.get("/stats", response_model=StatsModel)
    def get_stats():
        books = ctx.library.get_statistics()
        loans = ctx.circulation.statistics()
        return StatsModel(
            total_books=books["total_books"],
            unique_authors=books["unique_authors"],
            total_copies=books["total_copies"],
            available_copies=books["available_copies"],
            active_loans=loans["active_loans"],
            overdue_loans=loans["overdue_loans"],
            fines_collected=loans["fines_collected"],
        )

    # --- Books ---
    @app.get("/books", response_model=List[BookModel])
    def get_books(
        q: Optional[str] = Query(None, description="Search by title, author or ISBN"),
        category: Optional[str] = Query(None),
        author: Optional[str] = Query(None),
        active: bool = Query(False, description="Only active books"),
    ):
        if q:
            books = ctx.library.search_books(q)
        elif category:
            books = ctx.library.list_by_category(category)
        elif author:
            books = ctx.library.list_by_author(author)
        else:
            books = ctx.library.list_books(active_only=active)
        return [BookModel(**b.to_dict()) for b in books]

    @app.get("/books/{isbn}", response_model=BookModel)
    def get_book(isbn: str):
        book = ctx.library.find_book(isbn)
        if not book:
            raise HTTPException(status_code=404, detail="Book not found.")
        return BookModel(**book.to_dict())

    @app.post("/books", response_model=BookModel, status_code=201, dependencies=guarded)
    def add_book(payload: BookCreateModel):
        if not ISBNValidator.is_valid_isbn(payload.isbn):
            raise HTTPException(status_code=422, detail="Invalid ISBN format.")
        try:
            book = ctx.library.create_book(
                isbn=payload.isbn, title=payload.title, author=payload.author, category=payload.category,
                total_copies=payload.total_copies, reference_price=payload.reference_price,
            )
        except DuplicateIsbnError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return BookModel(**book.to_dict())

    @app.put("/books/{isbn}", response_model=BookModel, dependencies=guarded)
    def update_book(isbn: str, update: BookUpdateModel):
        try:
            book = ctx.library.update_book(isbn, **update.model_dump(exclude_none=True))
        except StockInvariantError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if not book:
            raise HTTPException(status_code=404, detail="Book not found.")
        return BookModel(**book.to_dict())

    @app.delete("/books/{isbn}", dependencies=guarded)
    def delete_book(isbn: str):
        try:
            removed = ctx.library.remove_book(isbn)
        except EntityInUseError as e:
            raise HTTPException(status_code=409, detail=str(e))
        if not removed:
            raise HTTPException(status_code=404, detail="Book not found.")
        return {"message": "Book removed."}

    @app.post("/books/{isbn}/activate", dependencies=guarded)
    def activate_book(isbn: str):
        if not ctx.library.activate_book(isbn):
            raise HTTPException(status_code=404, detail="Book not found.")
        return {"message": "Book activated."}

    @app.post("/books/{isbn}/deactivate", dependencies=guarded)
    def deactivate_book(isbn: str):
        if not ctx.library.deactivate_book(isbn):
            raise HTTPException(status_code=404, detail="Book not found.")
        return {"message": "Book deactivated."}

    # --- Members ---
    @app.get("/members", response_model=List[MemberModel])
    def get_members(active: bool = Query(False, description="Only active members")):
        return [MemberModel(**m.to_dict()) for m in ctx.members.list_members(active_only=active)]

    @app.get("/members/{member_id}", response_model=MemberModel)
    def get_member(member_id: int):
        member = ctx.members.find_member(member_id)
        if not member:
            raise HTTPException(status_code=404, detail="Member not found.")
        return MemberModel(**member.to_dict())

    @app.post("/members", response_model=MemberModel, status_code=201, dependencies=guarded)
    def add_member(payload: MemberCreateModel):
        try:
            member = ctx.members.create_member(payload.name, payload.email, payload.phone, payload.address)
        except DuplicateEmailError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return MemberModel(**member.to_dict())

    @app.put("/members/{member_id}", response_model=MemberModel, dependencies=guarded)
    def update_member(member_id: int, update: MemberUpdateModel):
        try:
            member = ctx.members.update_member(member_id, **update.model_dump(exclude_none=True))
        except DuplicateEmailError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if not member:
            raise HTTPException(status_code=404, detail="Member not found.")
        return MemberModel(**member.to_dict())

    @app.delete("/members/{member_id}", dependencies=guarded)
    def delete_member(member_id: int):
        try:
            removed = ctx.members.delete_member(member_id)
        except EntityInUseError as e:
            raise HTTPException(status_code=409, detail=str(e))
        if not removed:
            raise HTTPException(status_code=404, detail="Member not found.")
        return {"message": "Member removed."}

    @app.post("/members/{member_id}/activate", dependencies=guarded)
    def activate_member(member_id: int):
        if not ctx.members.activate_member(member_id):
            raise HTTPException(status_code=404, detail="Member not found.")
        return {"message": "Member activated."}

    @app.post("/members/{member_id}/deactivate", dependencies=guarded)
    def deactivate_member(member_id: int):
        if not ctx.members.deactivate_member(member_id):
            raise HTTPException(status_code=404, detail="Member not found.")
        return {"message": "Member deactivated."}

    # --- Loans ---
    @app.get("/loans", response_model=List[LoanModel])
    def get_loans(
        status: Optional[str] = Query(None, description="active | overdue"),
        member_id: Optional[int] = Query(None),
    ):
        if member_id is not None:
            loans = ctx.circulation.loans_for_member(member_id, active_only=(status == "active"))
        elif status == "active":
            loans = ctx.circulation.active_loans()
        elif status == "overdue":
            loans = ctx.circulation.overdue_loans()
        elif status is None:
            loans = ctx.circulation.list_loans()
        else:
            raise HTTPException(status_code=400, detail="Invalid status. Allowed: active, overdue")
        return [LoanModel(**loan.to_dict()) for loan in loans]

    @app.get("/loans/{loan_id}", response_model=LoanModel)
    def get_loan(loan_id: int):
        loan = ctx.circulation.find_loan(loan_id)
        if not loan:
            raise HTTPException(status_code=404, detail="Loan not found.")
        return LoanModel(**loan.to_dict())

    @app.post("/loans", response_model=LoanModel, status_code=201, dependencies=guarded)
    def create_loan(payload: LoanCreateModel):
        result = ctx.circulation.create_loan(payload.isbn, payload.member_id)
        if not result.ok:
            _raise_for(result.error, result.message)
        return LoanModel(**result.loan.to_dict())

    @app.get("/loans/{loan_id}/fine", response_model=FineModel)
    def preview_fine(loan_id: int):
        result = ctx.circulation.preview_fine(loan_id)
        if not result.ok:
            _raise_for(result.error, result.message)
        return _fine_model(result)

    @app.post("/loans/{loan_id}/return", response_model=FineModel, dependencies=guarded)
    def return_loan(loan_id: int):
        result = ctx.circulation.return_loan(loan_id)
        if not result.ok:
            _raise_for(result.error, result.message)
        return _fine_model(result)

    # --- Export ---
    @app.get("/export/books.csv")
    def export_books_csv():
        return _csv_response(to_csv_string(export_books_catalog, ctx.library.list_books()), "books_catalog")

    @app.get("/export/loans.csv")
    def export_loans_csv():
        return _csv_response(to_csv_string(export_all_loans, ctx.circulation.list_loans()), "all_loans")

    @app.get("/export/overdue.csv")
    def export_overdue_csv():
        content = to_csv_string(
            export_overdue_loans, ctx.circulation.overdue_loans(),
            today=ctx.circulation.clock(), fine_per_day=settings.fine_per_day,
        )
        return _csv_response(content, "overdue_loans")

    # --- Accounts ---
    @app.post("/auth/login", response_model=UserModel)
    def login(payload: LoginModel):
        try:
            user = ctx.accounts.login(payload.username, payload.password)
        except InvalidCredentialsError as e:
            raise HTTPException(status_code=401, detail=str(e))
        return UserModel(**user.to_dict())

    @app.post("/users", response_model=UserModel, status_code=201, dependencies=guarded)
    def add_user(payload: UserCreateModel, current: User = Depends(get_current_user)):
        try:
            user = ctx.accounts.create_user(current, payload.username, payload.password, role=payload.role)
        except PermissionDeniedError as e:
            raise HTTPException(status_code=403, detail=str(e))
        except DuplicateUsernameError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return UserModel(**user.to_dict())

    return app
