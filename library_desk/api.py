"""HTTP API over the lending service.

Reads are open; every mutation requires the ``X-API-Key`` header. Lending
errors are mapped to HTTP statuses by a single exception handler.
"""
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from library_desk.book import Book, DigitalExtras
from library_desk.config import settings
from library_desk.exceptions import LibraryError
from library_desk.lending import LendingService, open_service
from library_desk.user import BorrowRecord, User

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Service ---
_service: Optional[LendingService] = None


def get_service() -> LendingService:
    """Dependency returning the process-wide lending service."""
    global _service
    if _service is None:
        _service = open_service(settings)
    return _service


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency validating the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Error mapping ---
ERROR_STATUS: Dict[str, int] = {
    "not_found": 404,
    "duplicate_key": 409,
    "resource_busy": 409,
    "not_available": 409,
    "already_borrowed": 409,
    "limit_exceeded": 409,
    "not_borrowed": 409,
    "invalid_date_range": 400,
    "invalid_date": 400,
    "invalid_input": 400,
    "invariant_violation": 500,
    "persistence_failure": 503,
}


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    status = ERROR_STATUS.get(exc.code, 400)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "code": exc.code})


# --- Models ---
class BookModel(BaseModel):
    book_id: str
    title: str
    author: str
    total_copies: int
    available_copies: int
    active: bool
    download_link: str | None = None
    download_limit: int | None = None


class BookCreateModel(BaseModel):
    book_id: str
    title: str
    author: str = ""
    total_copies: int = Field(default=1, ge=1, description="Number of lendable copies")
    download_link: str | None = Field(default=None, description="Set for a digital edition")
    download_limit: int = Field(default=0, ge=0)


class UpdateBookModel(BaseModel):
    title: str | None = None
    author: str | None = None
    total_copies: int | None = Field(default=None, ge=1)


class StatusModel(BaseModel):
    active: bool


class UserModel(BaseModel):
    user_id: str
    name: str
    email: str
    phone: str
    active: bool
    active_borrow_count: int


class UserCreateModel(BaseModel):
    user_id: str
    name: str
    email: str = ""
    phone: str = ""


class BorrowRecordModel(BaseModel):
    record_id: int | None = None
    user_id: str
    book_id: str
    borrow_date: date
    return_date: date | None = None
    returned: bool
    due_date: date | None = None


class LoanRequest(BaseModel):
    user_id: str
    book_id: str
    date: str | None = Field(default=None, description="DD/MM/YYYY or YYYY-MM-DD; defaults to today")


class ReturnResponse(BaseModel):
    record: BorrowRecordModel
    fine: float
    days_borrowed: int
    overdue_days: int


class StatsModel(BaseModel):
    total_titles: int
    total_available_copies: int
    total_borrowed_copies: int
    total_users: int


# --- Helper Functions ---
def _record_model(record: BorrowRecord, service: LendingService) -> BorrowRecordModel:
    return BorrowRecordModel(
        record_id=record.record_id,
        user_id=record.user_id,
        book_id=record.book_id,
        borrow_date=record.borrow_date,
        return_date=record.return_date,
        returned=record.returned,
        due_date=service.due_date(record.borrow_date),
    )


# --- Health Check ---
@app.get("/health")
def health(service: LendingService = Depends(get_service)):
    """Lightweight health endpoint."""
    stats = service.statistics()
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "storage": settings.storage_backend,
        "total_titles": stats["total_titles"],
    }


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def get_books(
    q: Optional[str] = Query(None, description="Search query over ID, title and author"),
    service: LendingService = Depends(get_service),
):
    """List books, optionally filtered by a case-insensitive search query."""
    books = service.search_books(q) if q else service.list_books()
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, service: LendingService = Depends(get_service)):
    return BookModel(**service.find_book(book_id).to_dict())


@app.post("/books", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel, service: LendingService = Depends(get_service)):
    """Add a new book to the catalog."""
    digital = DigitalExtras(payload.download_link, payload.download_limit) if payload.download_link else None
    book = Book(payload.book_id, payload.title, payload.author,
                total_copies=payload.total_copies, digital=digital)
    return BookModel(**service.add_book(book).to_dict())


@app.put("/books/{book_id}", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_book(book_id: str, update: UpdateBookModel, service: LendingService = Depends(get_service)):
    """Update title, author and/or copy count of a book."""
    book = service.update_book(book_id, title=update.title, author=update.author,
                               total_copies=update.total_copies)
    return BookModel(**book.to_dict())


@app.put("/books/{book_id}/status", response_model=BookModel, dependencies=[Depends(get_api_key)])
def set_book_status(book_id: str, status: StatusModel, service: LendingService = Depends(get_service)):
    return BookModel(**service.set_book_active(book_id, status.active).to_dict())


@app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
def delete_book(book_id: str, service: LendingService = Depends(get_service)):
    """Remove a book. Fails with 409 while copies are on loan."""
    service.remove_book(book_id)
    return {"message": f"Book {book_id} removed."}


# --- Users ---
@app.get("/users", response_model=List[UserModel])
def get_users(service: LendingService = Depends(get_service)):
    return [UserModel(**u.to_dict()) for u in service.list_users()]


@app.get("/users/{user_id}", response_model=UserModel)
def get_user(user_id: str, service: LendingService = Depends(get_service)):
    return UserModel(**service.find_user(user_id).to_dict())


@app.post("/users", response_model=UserModel, status_code=201, dependencies=[Depends(get_api_key)])
def register_user(payload: UserCreateModel, service: LendingService = Depends(get_service)):
    user = User(payload.user_id, payload.name, email=payload.email, phone=payload.phone)
    return UserModel(**service.register_user(user).to_dict())


@app.put("/users/{user_id}/status", response_model=UserModel, dependencies=[Depends(get_api_key)])
def set_user_status(user_id: str, status: StatusModel, service: LendingService = Depends(get_service)):
    return UserModel(**service.set_user_active(user_id, status.active).to_dict())


@app.delete("/users/{user_id}", dependencies=[Depends(get_api_key)])
def delete_user(user_id: str, service: LendingService = Depends(get_service)):
    """Remove a user. Fails with 409 while the user has borrowed books."""
    service.remove_user(user_id)
    return {"message": f"User {user_id} removed."}


@app.get("/users/{user_id}/borrows", response_model=List[BorrowRecordModel])
def get_user_borrows(
    user_id: str,
    include_returned: bool = Query(False, description="Include the full borrow history"),
    service: LendingService = Depends(get_service),
):
    records = service.borrow_history(user_id) if include_returned else service.list_active_borrows(user_id)
    return [_record_model(r, service) for r in records]


# --- Loans ---
@app.post("/loans/issue", response_model=BorrowRecordModel, status_code=201, dependencies=[Depends(get_api_key)])
def issue_book(payload: LoanRequest, service: LendingService = Depends(get_service)):
    record = service.issue_book(payload.user_id, payload.book_id, payload.date)
    return _record_model(record, service)


@app.post("/loans/return", response_model=ReturnResponse, dependencies=[Depends(get_api_key)])
def return_book(payload: LoanRequest, service: LendingService = Depends(get_service)):
    result = service.return_book(payload.user_id, payload.book_id, payload.date)
    return ReturnResponse(
        record=_record_model(result.record, service),
        fine=result.fine,
        days_borrowed=result.days_borrowed,
        overdue_days=result.overdue_days,
    )


# --- Statistics ---
@app.get("/stats", response_model=StatsModel)
def get_library_stats(service: LendingService = Depends(get_service)):
    """Aggregate copy and user counts."""
    return StatsModel(**service.statistics())
