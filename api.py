import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from book import Book
from config import settings
from database import get_db_connection
from errors import ErrorKind, LendingError
from library import Library
from member import Member, MembershipType
from transaction import TransactionStatus

logging.basicConfig(level=logging.DEBUG if settings.debug else settings.log_level)
logger = logging.getLogger(__name__)

library = Library()

app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAVAILABLE: 409,
    ErrorKind.VALIDATION_FAILURE: 422,
    ErrorKind.CONCURRENCY_CONFLICT: 503,
    ErrorKind.TRANSACTION_FAILED: 500,
}


def _error_response(kind: ErrorKind, message: str) -> JSONResponse:
    headers = {"Retry-After": "1"} if kind is ErrorKind.CONCURRENCY_CONFLICT else None
    return JSONResponse(
        status_code=_STATUS_BY_KIND[kind],
        content={"detail": message, "error": kind.value},
        headers=headers,
    )


@app.exception_handler(LendingError)
async def lending_error_handler(request, exc: LendingError):
    return _error_response(exc.kind, str(exc))


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that checks the API key on write endpoints."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health check: a quick database round trip plus lending policy."""
    db_ok = True
    try:
        conn = get_db_connection(library.db_file)
        conn.execute("SELECT 1")
        conn.close()
    except Exception as e:
        logger.warning(f"Health check could not reach the database: {e}")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "db": db_ok,
        "loan_period_days": settings.loan_period_days,
        "fine_per_day": str(settings.fine_per_day),
    }


# --- Models ---
class BookModel(BaseModel):
    book_id: int
    title: str
    author: str | None = None
    category: str | None = None
    total_copies: int
    available_copies: int
    publisher: str | None = None
    publication_year: str | None = None
    isbn: str | None = None
    price: Decimal | None = None


class BookCreateModel(BaseModel):
    book_id: int | None = Field(default=None, description="Leave empty to assign the next id")
    title: str
    author: str | None = None
    category: str | None = None
    total_copies: int = Field(default=1, ge=0)
    publisher: str | None = None
    publication_year: str | None = None
    isbn: str | None = None
    price: Decimal | None = None


class MemberModel(BaseModel):
    member_id: int
    first_name: str
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    membership_date: str | None = None
    membership_type: MembershipType


class MemberCreateModel(BaseModel):
    member_id: int | None = None
    first_name: str
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    membership_type: MembershipType = MembershipType.STUDENT


class TransactionModel(BaseModel):
    transaction_id: int
    member_id: int
    book_id: int
    issue_date: date
    due_date: date
    return_date: date | None = None
    fine_amount: Decimal
    status: TransactionStatus


class IssueRequest(BaseModel):
    member_id: int
    book_id: int


class IssueResponse(BaseModel):
    transaction_id: int
    due_date: date
    message: str


class ReturnRequest(BaseModel):
    return_date: date | None = Field(default=None, description="Defaults to today")


class FineResponse(BaseModel):
    transaction_id: int
    fine_amount: Decimal
    currency: str
    as_of: date


class OverdueResponse(BaseModel):
    marked_overdue: int
    as_of: date


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def list_books(q: Optional[str] = Query(default=None, description="Search title, author or category")):
    books = library.search_books(q) if q else library.list_books()
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: int):
    book = library.find_book(book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookModel(**book.to_dict())


@app.post("/books", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel):
    book = library.add_book(Book(**payload.model_dump()))
    return BookModel(**book.to_dict())


# --- Members ---
@app.get("/members", response_model=List[MemberModel])
def list_members():
    return [MemberModel(**m.to_dict()) for m in library.list_members()]


@app.get("/members/{member_id}", response_model=MemberModel)
def get_member(member_id: int):
    member = library.find_member(member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found.")
    return MemberModel(**member.to_dict())


@app.post("/members", response_model=MemberModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_member(payload: MemberCreateModel):
    member = library.add_member(Member(**payload.model_dump()))
    return MemberModel(**member.to_dict())


# --- Transactions ---
@app.post("/transactions", response_model=IssueResponse, status_code=201, dependencies=[Depends(get_api_key)])
def issue_book(payload: IssueRequest):
    """Issue a book. Rejections come back with the error kind in the body."""
    result = library.issue_book(payload.member_id, payload.book_id)
    if not result.ok:
        return _error_response(result.error, result.message)
    return IssueResponse(transaction_id=result.transaction_id, due_date=result.due_date, message=result.message)


@app.get("/transactions", response_model=List[TransactionModel])
def list_transactions(
    member_id: Optional[int] = None,
    book_id: Optional[int] = None,
    status: Optional[TransactionStatus] = None,
):
    transactions = library.list_transactions(member_id=member_id, book_id=book_id, status=status)
    return [TransactionModel(**t.to_dict()) for t in transactions]


@app.post("/transactions/mark-overdue", response_model=OverdueResponse, dependencies=[Depends(get_api_key)])
def mark_overdue():
    today = date.today()
    return OverdueResponse(marked_overdue=library.mark_overdue(today), as_of=today)


@app.get("/transactions/{transaction_id}", response_model=TransactionModel)
def get_transaction(transaction_id: int):
    return TransactionModel(**library.get_transaction(transaction_id).to_dict())


@app.post("/transactions/{transaction_id}/return", response_model=TransactionModel,
          dependencies=[Depends(get_api_key)])
def return_book(transaction_id: int, payload: ReturnRequest | None = None):
    return_date = payload.return_date if payload else None
    return TransactionModel(**library.return_book(transaction_id, return_date).to_dict())


@app.get("/transactions/{transaction_id}/fine", response_model=FineResponse)
def get_fine(transaction_id: int):
    today = date.today()
    return FineResponse(
        transaction_id=transaction_id,
        fine_amount=library.calculate_fine(transaction_id, today),
        currency=settings.fine_currency,
        as_of=today,
    )
