#!/usr/bin/env python

"""
    API routes for Libris:
    catalog management, borrowing and returning, statistics,
    and catalog import/export.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from typing import Dict, List, Optional
from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status,
)
from libris.configs import TOP_BOOKS_LIMIT
from libris.core import models, transfer
from libris.core.context import LibraryContext
from libris.core.db import storage
from libris.core.exceptions import (
    LibrisError,
    NotFoundError,
    RecordExistsError,
    AlreadyBorrowedError,
    AlreadyReturnedError,
    BookBorrowedError,
    ReaderHasOpenLoansError,
    MonthlyLimitExceededError,
    InvalidRecordError,
    StorageFailureError,
)
from libris.schemas.book import Book, BookIn, BookUpdate
from libris.schemas.reader import Reader, ReaderIn, ReaderUpdate
from libris.schemas.loan import Loan, BorrowRequest, BorrowCheck

EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "xml": "application/xml",
}

ERROR_STATUS = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (RecordExistsError, status.HTTP_409_CONFLICT),
    (AlreadyBorrowedError, status.HTTP_409_CONFLICT),
    (AlreadyReturnedError, status.HTTP_409_CONFLICT),
    (BookBorrowedError, status.HTTP_409_CONFLICT),
    (ReaderHasOpenLoansError, status.HTTP_409_CONFLICT),
    (MonthlyLimitExceededError, status.HTTP_409_CONFLICT),
    (InvalidRecordError, status.HTTP_400_BAD_REQUEST),
    (StorageFailureError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]

router = APIRouter()

def get_library(request: Request) -> LibraryContext:
    return request.app.state.library

def http_error(e: LibrisError) -> HTTPException:
    for kind, code in ERROR_STATUS:
        if isinstance(e, kind):
            return HTTPException(status_code=code, detail=str(e))
    return HTTPException(status_code=500, detail=f"Unexpected error: {str(e)}")

def to_schema(library: LibraryContext, schema, load, action: str):
    """Loads records and reads them into `schema` under the library lock,
    so attributes expired by a commit are refreshed inside `storage`."""
    with library.lock, storage(library.session, action, commit=False):
        result = load()
        if isinstance(result, list):
            return [schema.model_validate(r) for r in result]
        return None if result is None else schema.model_validate(result)

def loan_out(loan, library: LibraryContext) -> Loan:
    with library.lock, storage(library.session, "read loan", commit=False):
        out = Loan.model_validate(loan)
        out.overdue_days = loan.days_overdue(library.today())
    return out

def _export(text_json: str, text_xml: str, format: str, filename: str) -> Response:
    content = text_xml if format == "xml" else text_json
    return Response(
        content=content,
        media_type=EXPORT_MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}.{format}"'}
    )

async def _read_upload(file: UploadFile, format: Optional[str]):
    format = (format or (file.filename or "").rsplit(".", 1)[-1]).lower()
    if format not in EXPORT_MEDIA_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported import format: {format}")
    try:
        return format, (await file.read()).decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Import file must be UTF-8 encoded")

# Books

@router.get("/books", response_model=List[Book])
async def list_books(library: LibraryContext = Depends(get_library)):
    try:
        return to_schema(library, Book, library.catalog.all_books, "list books")
    except LibrisError as e:
        raise http_error(e)

@router.post("/books", response_model=Book, status_code=status.HTTP_201_CREATED)
async def add_book(book: BookIn, library: LibraryContext = Depends(get_library)):
    try:
        return to_schema(library, Book, lambda: library.lending.add_book(models.Book(**book.model_dump())),
                         f"add book {book.isbn}")
    except LibrisError as e:
        raise http_error(e)

@router.get("/books/export")
async def export_books(format: str = "json", library: LibraryContext = Depends(get_library)):
    if format not in EXPORT_MEDIA_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")
    try:
        with library.lock, storage(library.session, "export books", commit=False):
            books = library.catalog.all_books()
            texts = transfer.books_to_json(books), transfer.books_to_xml(books)
    except LibrisError as e:
        raise http_error(e)
    return _export(*texts, format, "livres")

@router.post("/books/import")
async def import_books(
    file: UploadFile = File(..., description="JSON array or <bibliotheque> XML of books"),
    format: Optional[str] = Form(None, description="json or xml; guessed from the file name if omitted"),
    library: LibraryContext = Depends(get_library)
):
    format, text = await _read_upload(file, format)
    try:
        books = transfer.books_from_xml(text) if format == "xml" else transfer.books_from_json(text)
        return {"imported": library.lending.import_books(books), "received": len(books)}
    except LibrisError as e:
        raise http_error(e)

@router.get("/books/{isbn}", response_model=Book)
async def get_book(isbn: str, library: LibraryContext = Depends(get_library)):
    try:
        book = to_schema(library, Book, lambda: library.catalog.find_book(isbn), f"find book {isbn}")
    except LibrisError as e:
        raise http_error(e)
    if not book:
        raise HTTPException(status_code=404, detail=f"Book {isbn} not found.")
    return book

@router.put("/books/{isbn}", response_model=Book)
async def update_book(isbn: str, changes: BookUpdate, library: LibraryContext = Depends(get_library)):
    try:
        return to_schema(library, Book, lambda: library.lending.update_book(
            isbn, **changes.model_dump(exclude_unset=True)), f"update book {isbn}")
    except LibrisError as e:
        raise http_error(e)

@router.delete("/books/{isbn}")
async def remove_book(isbn: str, library: LibraryContext = Depends(get_library)):
    try:
        library.lending.remove_book(isbn)
        return {"success": True, "isbn": isbn}
    except LibrisError as e:
        raise http_error(e)

# Readers

@router.get("/readers", response_model=List[Reader])
async def list_readers(library: LibraryContext = Depends(get_library)):
    try:
        return to_schema(library, Reader, library.catalog.all_readers, "list readers")
    except LibrisError as e:
        raise http_error(e)

@router.post("/readers", response_model=Reader, status_code=status.HTTP_201_CREATED)
async def register_reader(reader: ReaderIn, library: LibraryContext = Depends(get_library)):
    try:
        return to_schema(library, Reader, lambda: library.lending.register_reader(models.Reader(**reader.model_dump())),
                         f"register reader {reader.subscriber_number}")
    except LibrisError as e:
        raise http_error(e)

@router.get("/readers/export")
async def export_readers(format: str = "json", library: LibraryContext = Depends(get_library)):
    if format not in EXPORT_MEDIA_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")
    try:
        with library.lock, storage(library.session, "export readers", commit=False):
            readers = library.catalog.all_readers()
            texts = transfer.readers_to_json(readers), transfer.readers_to_xml(readers)
    except LibrisError as e:
        raise http_error(e)
    return _export(*texts, format, "lecteurs")

@router.post("/readers/import")
async def import_readers(
    file: UploadFile = File(..., description="JSON array or <bibliotheque> XML of readers"),
    format: Optional[str] = Form(None, description="json or xml; guessed from the file name if omitted"),
    library: LibraryContext = Depends(get_library)
):
    format, text = await _read_upload(file, format)
    try:
        readers = transfer.readers_from_xml(text) if format == "xml" else transfer.readers_from_json(text)
        return {"imported": library.lending.import_readers(readers), "received": len(readers)}
    except LibrisError as e:
        raise http_error(e)

@router.get("/readers/{subscriber_number}", response_model=Reader)
async def get_reader(subscriber_number: str, library: LibraryContext = Depends(get_library)):
    try:
        reader = to_schema(library, Reader, lambda: library.catalog.find_reader(subscriber_number),
                           f"find reader {subscriber_number}")
    except LibrisError as e:
        raise http_error(e)
    if not reader:
        raise HTTPException(status_code=404, detail=f"Reader {subscriber_number} not found.")
    return reader

@router.put("/readers/{subscriber_number}", response_model=Reader)
async def update_reader(subscriber_number: str, changes: ReaderUpdate,
                        library: LibraryContext = Depends(get_library)):
    try:
        return to_schema(library, Reader, lambda: library.lending.update_reader(
            subscriber_number, **changes.model_dump(exclude_unset=True)), f"update reader {subscriber_number}")
    except LibrisError as e:
        raise http_error(e)

@router.delete("/readers/{subscriber_number}")
async def remove_reader(subscriber_number: str, library: LibraryContext = Depends(get_library)):
    try:
        library.lending.remove_reader(subscriber_number)
        return {"success": True, "subscriber_number": subscriber_number}
    except LibrisError as e:
        raise http_error(e)

@router.get("/readers/{subscriber_number}/loans", response_model=List[Loan])
async def reader_loans(subscriber_number: str, library: LibraryContext = Depends(get_library)):
    try:
        return [loan_out(loan, library) for loan in library.ledger.by_reader(subscriber_number)]
    except LibrisError as e:
        raise http_error(e)

@router.get("/readers/{subscriber_number}/overdue", response_model=List[Loan])
async def reader_overdue_loans(subscriber_number: str, library: LibraryContext = Depends(get_library)):
    try:
        loans = library.analyzer.overdue_loans_for_reader(subscriber_number, library.today())
        return [loan_out(loan, library) for loan in loans]
    except LibrisError as e:
        raise http_error(e)

# Loans

@router.get("/loans", response_model=List[Loan])
async def list_loans(library: LibraryContext = Depends(get_library)):
    try:
        return [loan_out(loan, library) for loan in library.ledger.all()]
    except LibrisError as e:
        raise http_error(e)

@router.get("/loans/overdue", response_model=List[Loan])
async def overdue_loans(library: LibraryContext = Depends(get_library)):
    try:
        return [loan_out(loan, library) for loan in library.analyzer.all_overdue_loans(library.today())]
    except LibrisError as e:
        raise http_error(e)

@router.get("/loans/check", response_model=BorrowCheck)
async def check_borrow(isbn: str, subscriber_number: str, library: LibraryContext = Depends(get_library)):
    """
    Tells the librarian whether a borrow would go through and what to
    warn about first: loans already taken this month and overdue books.
    """
    try:
        check = library.lending.check_borrow(isbn, subscriber_number, library.today())
    except LibrisError as e:
        raise http_error(e)
    return BorrowCheck(
        isbn=isbn,
        subscriber_number=subscriber_number,
        monthly_loan_count=check.monthly_loan_count,
        monthly_limit=check.monthly_limit,
        limit_reached=check.limit_reached,
        overdue_loans=[loan_out(loan, library) for loan in check.overdue_loans],
    )

@router.post("/loans", response_model=Loan, status_code=status.HTTP_201_CREATED)
async def borrow(body: BorrowRequest, library: LibraryContext = Depends(get_library)):
    try:
        loan = library.lending.borrow(
            body.isbn, body.subscriber_number, library.today(), force=body.force
        )
        return loan_out(loan, library)
    except LibrisError as e:
        raise http_error(e)

@router.post("/loans/{loan_id}/return", response_model=Loan)
async def return_loan(loan_id: str, library: LibraryContext = Depends(get_library)):
    try:
        return loan_out(library.lending.return_loan(loan_id, library.today()), library)
    except LibrisError as e:
        raise http_error(e)

# Statistics

@router.get("/stats/top-books", response_model=Dict[str, int])
async def top_books(limit: int = TOP_BOOKS_LIMIT, by: str = "isbn", library: LibraryContext = Depends(get_library)):
    try:
        if by == "title":
            return library.analyzer.top_borrowed_titles(limit)
        return library.analyzer.top_borrowed_books(limit)
    except LibrisError as e:
        raise http_error(e)

@router.get("/stats/readers", response_model=Dict[str, int])
async def loans_per_reader(by: str = "number", library: LibraryContext = Depends(get_library)):
    try:
        if by == "name":
            return library.analyzer.loans_count_by_reader_name()
        return library.analyzer.loans_count_by_reader()
    except LibrisError as e:
        raise http_error(e)

@router.get("/stats/summary")
async def summary(library: LibraryContext = Depends(get_library)):
    try:
        return library.analyzer.summary(library.today())
    except LibrisError as e:
        raise http_error(e)
