#!/usr/bin/env python

"""
    Loan lifecycle engine for Libris.

    The single authority for state transitions that couple a book's
    status with the existence of an open loan. A book is BORROWED
    exactly when the ledger holds an open loan for its ISBN; borrow and
    return change both sides under one lock and one commit.

    Catalog edits go through here too, so that presentation code never
    mutates the stores directly.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterable, List

from libris.configs import DEFAULT_LOAN_DAYS, MONTHLY_LOAN_LIMIT, ENFORCE_MONTHLY_LIMIT
from libris.core.db import storage
from libris.core.models import Book, BookStatus, Loan, Reader
from libris.core.exceptions import (
    AlreadyBorrowedError,
    BookBorrowedError,
    BookNotFoundError,
    InvalidRecordError,
    LoanNotFoundError,
    MonthlyLimitExceededError,
    ReaderHasOpenLoansError,
    ReaderNotFoundError,
    RecordExistsError,
)

logger = logging.getLogger(__name__)

BOOK_FIELDS = ("title", "author", "year", "publisher")
READER_FIELDS = ("first_name", "last_name", "email", "max_loan_days")


@dataclass
class BorrowCheck:
    """What a librarian should know before confirming a borrow."""
    book: Book
    reader: Reader
    monthly_loan_count: int
    monthly_limit: int
    overdue_loans: List[Loan] = field(default_factory=list)

    @property
    def limit_reached(self) -> bool:
        return self.monthly_loan_count >= self.monthly_limit


class LoanEngine:

    def __init__(self, catalog, ledger, lock=None,
                 monthly_limit: int = MONTHLY_LOAN_LIMIT,
                 enforce_monthly_limit: bool = ENFORCE_MONTHLY_LIMIT,
                 default_loan_days: int = DEFAULT_LOAN_DAYS):
        self.catalog = catalog
        self.ledger = ledger
        self.session = catalog.session
        self.lock = lock or threading.RLock()
        self.monthly_limit = monthly_limit
        self.enforce_monthly_limit = enforce_monthly_limit
        self.default_loan_days = default_loan_days
        self._listeners: List[Callable] = []

    # Notifications

    def subscribe(self, callback: Callable) -> Callable:
        """Registers `callback(event, payload)`, called after every
        committed mutation."""
        self._listeners.append(callback)
        return callback

    def unsubscribe(self, callback: Callable):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, event: str, payload):
        for callback in list(self._listeners):
            try:
                callback(event, payload)
            except Exception:
                # Mutation is already committed
                logger.exception("Listener %r failed on %s", callback, event)

    # Lending rules

    @staticmethod
    def is_overdue(loan: Loan, today: datetime.date) -> bool:
        return loan.is_overdue(today)

    def loan_days_for(self, reader: Reader) -> int:
        return reader.max_loan_days if reader.max_loan_days and reader.max_loan_days > 0 \
            else self.default_loan_days

    def due_date_for(self, reader: Reader, borrow_date: datetime.date) -> datetime.date:
        return borrow_date + datetime.timedelta(days=self.loan_days_for(reader))

    def monthly_loan_count(self, subscriber_number: str, today: datetime.date) -> int:
        return self.ledger.count_in_month(subscriber_number, today)

    def _require_book(self, isbn: str) -> Book:
        if not (book := self.catalog.find_book(isbn)):
            raise BookNotFoundError(f"Book {isbn} not found.")
        return book

    def _require_reader(self, subscriber_number: str) -> Reader:
        if not (reader := self.catalog.find_reader(subscriber_number)):
            raise ReaderNotFoundError(f"Reader {subscriber_number} not found.")
        return reader

    def _require_borrowable(self, book: Book):
        if not book.is_available or self.ledger.open_loan_for_book(book.isbn):
            logger.warning("Refusing borrow of %s: already borrowed", book.isbn)
            raise AlreadyBorrowedError(f"Book {book.isbn} is already borrowed.")

    def check_borrow(self, isbn: str, subscriber_number: str,
                     today: datetime.date) -> BorrowCheck:
        """Runs the hard preconditions of a borrow and reports the advisory
        ones (monthly count, overdue loans) without changing anything.

        Raises:
            BookNotFoundError, ReaderNotFoundError, AlreadyBorrowedError
        """
        with self.lock:
            book = self._require_book(isbn)
            reader = self._require_reader(subscriber_number)
            self._require_borrowable(book)
            return BorrowCheck(
                book=book,
                reader=reader,
                monthly_loan_count=self.monthly_loan_count(subscriber_number, today),
                monthly_limit=self.monthly_limit,
                overdue_loans=self.ledger.overdue(today, subscriber_number),
            )

    def borrow(self, isbn: str, subscriber_number: str, today: datetime.date,
               force: bool = False) -> Loan:
        """
        Lends a book to a reader.

        The due date is fixed here from the reader's current allowance and
        is not recomputed later. The loan row is written before the book
        flips to BORROWED, and both are committed together.

        Args:
            isbn: ISBN of the book to lend.
            subscriber_number: The borrowing reader.
            today: Borrow date.
            force: Proceed even when an enforced monthly limit is reached.

        Returns:
            The new open Loan.

        Raises:
            BookNotFoundError: If the book does not exist.
            ReaderNotFoundError: If the reader does not exist.
            AlreadyBorrowedError: If the book has an open loan.
            MonthlyLimitExceededError: If the monthly limit is enforced,
                reached, and `force` is not set.
            StorageFailureError: If either write fails; nothing is committed.
        """
        with self.lock:
            check = self.check_borrow(isbn, subscriber_number, today)
            if check.limit_reached:
                if self.enforce_monthly_limit and not force:
                    logger.warning("Refusing borrow of %s by %s: %d loans this month",
                                   isbn, subscriber_number, check.monthly_loan_count)
                    raise MonthlyLimitExceededError(check.monthly_loan_count, check.monthly_limit)
                logger.info("Reader %s is over the monthly limit (%d/%d), lending anyway",
                            subscriber_number, check.monthly_loan_count, check.monthly_limit)

            loan = Loan(
                id=str(uuid.uuid4()),
                book_isbn=isbn,
                reader_subscriber_number=subscriber_number,
                borrow_date=today,
                due_date=self.due_date_for(check.reader, today),
                returned=False,
            )
            with storage(self.session, f"borrow book {isbn}"):
                self.ledger.insert(loan, commit=False)
                self.catalog.set_book_status(check.book, BookStatus.BORROWED, commit=False)

        logger.info("Book %s lent to %s until %s (loan %s)",
                    isbn, subscriber_number, loan.due_date, loan.id)
        self._notify("loan_created", loan)
        return loan

    def return_loan(self, loan_id: str, today: datetime.date) -> Loan:
        """
        Closes an open loan and makes its book available again.

        Raises:
            LoanNotFoundError: If the loan does not exist.
            AlreadyReturnedError: If it was already returned.
            StorageFailureError: If either write fails; nothing is committed.
        """
        with self.lock:
            with storage(self.session, f"return loan {loan_id}"):
                loan = self.ledger.mark_returned(loan_id, returned_on=today, commit=False)
                # Missing only if deleted behind the engine's back
                if book := self.catalog.find_book(loan.book_isbn):
                    self.catalog.set_book_status(book, BookStatus.AVAILABLE, commit=False)

        logger.info("Loan %s returned (book %s)", loan.id, loan.book_isbn)
        self._notify("loan_returned", loan)
        return loan

    def return_book(self, isbn: str, today: datetime.date) -> Loan:
        """Returns whichever open loan holds the book."""
        with self.lock:
            self._require_book(isbn)
            if not (loan := self.ledger.open_loan_for_book(isbn)):
                raise LoanNotFoundError(f"Book {isbn} has no open loan.")
            return self.return_loan(loan.id, today)

    # Catalog commands

    def add_book(self, book: Book) -> Book:
        with self.lock:
            if self.catalog.find_book(book.isbn):
                raise RecordExistsError(f"Book with ISBN {book.isbn} already exists.")
            # Status follows the ledger, never the caller
            book.status = BookStatus.AVAILABLE
            book = self.catalog.upsert_book(book)
        logger.info("Book %s added", book.isbn)
        self._notify("book_added", book)
        return book

    def update_book(self, isbn: str, /, **fields) -> Book:
        """Edits descriptive fields of a book. ISBN and status are not editable."""
        unknown = set(fields) - set(BOOK_FIELDS)
        if unknown:
            raise InvalidRecordError(f"Cannot update book field(s): {', '.join(sorted(unknown))}.")
        with self.lock:
            book = self._require_book(isbn)
            with storage(self.session, f"update book {isbn}"):
                for name, value in fields.items():
                    if value is not None:
                        setattr(book, name, value)
        logger.info("Book %s updated", isbn)
        self._notify("book_updated", book)
        return book

    def remove_book(self, isbn: str) -> bool:
        """Deletes a book unless it is currently lent out. Returned loans
        keep pointing at the ISBN."""
        with self.lock:
            book = self._require_book(isbn)
            if not book.is_available or self.ledger.open_loan_for_book(isbn):
                logger.warning("Refusing to delete borrowed book %s", isbn)
                raise BookBorrowedError(f"Book {isbn} is borrowed and cannot be deleted.")
            removed = self.catalog.delete_book(isbn)
        logger.info("Book %s removed", isbn)
        self._notify("book_removed", isbn)
        return removed

    def register_reader(self, reader: Reader) -> Reader:
        if not reader.max_loan_days or reader.max_loan_days <= 0:
            raise InvalidRecordError("max_loan_days must be a positive number of days.")
        with self.lock:
            if self.catalog.find_reader(reader.subscriber_number):
                raise RecordExistsError(
                    f"Reader {reader.subscriber_number} already exists."
                )
            reader = self.catalog.upsert_reader(reader)
        logger.info("Reader %s registered", reader.subscriber_number)
        self._notify("reader_added", reader)
        return reader

    def update_reader(self, subscriber_number: str, /, **fields) -> Reader:
        """Edits a reader. A new max_loan_days applies to future loans only."""
        unknown = set(fields) - set(READER_FIELDS)
        if unknown:
            raise InvalidRecordError(f"Cannot update reader field(s): {', '.join(sorted(unknown))}.")
        days = fields.get("max_loan_days")
        if days is not None and days <= 0:
            raise InvalidRecordError("max_loan_days must be a positive number of days.")
        with self.lock:
            reader = self._require_reader(subscriber_number)
            with storage(self.session, f"update reader {subscriber_number}"):
                for name, value in fields.items():
                    if value is not None:
                        setattr(reader, name, value)
        logger.info("Reader %s updated", subscriber_number)
        self._notify("reader_updated", reader)
        return reader

    def remove_reader(self, subscriber_number: str) -> bool:
        """Deletes a reader unless they hold an open loan."""
        with self.lock:
            self._require_reader(subscriber_number)
            if open_loans := self.ledger.open_loans_for_reader(subscriber_number):
                logger.warning("Refusing to delete reader %s with %d open loan(s)",
                               subscriber_number, len(open_loans))
                raise ReaderHasOpenLoansError(
                    f"Reader {subscriber_number} has {len(open_loans)} open loan(s)."
                )
            removed = self.catalog.delete_reader(subscriber_number)
        logger.info("Reader %s removed", subscriber_number)
        self._notify("reader_removed", subscriber_number)
        return removed

    def import_books(self, books: Iterable[Book]) -> int:
        """Adds books whose ISBN is not yet known and skips the rest.
        Returns the number added."""
        added = []
        with self.lock:
            seen = set()
            with storage(self.session, "import books"):
                for book in books:
                    if not book.isbn or book.isbn in seen or self.catalog.find_book(book.isbn):
                        continue
                    seen.add(book.isbn)
                    book.status = BookStatus.AVAILABLE
                    added.append(self.catalog.upsert_book(book, commit=False))
        logger.info("Imported %d book(s)", len(added))
        for book in added:
            self._notify("book_added", book)
        return len(added)

    def import_readers(self, readers: Iterable[Reader]) -> int:
        """Adds readers whose subscriber number is not yet known and skips
        the rest. Returns the number added."""
        added = []
        with self.lock:
            seen = set()
            with storage(self.session, "import readers"):
                for reader in readers:
                    number = reader.subscriber_number
                    if not number or number in seen or self.catalog.find_reader(number):
                        continue
                    seen.add(number)
                    added.append(self.catalog.upsert_reader(reader, commit=False))
        logger.info("Imported %d reader(s)", len(added))
        for reader in added:
            self._notify("reader_added", reader)
        return len(added)
