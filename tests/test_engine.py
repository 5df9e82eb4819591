#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.test_engine
    ~~~~~~~~~~~~~~~~~

    Borrow and return rules, and the coupling between a book's status
    and its open loan.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import datetime
import pytest
from unittest.mock import patch
from sqlalchemy.exc import SQLAlchemyError

from conftest import make_book, make_reader
from libris.core.context import LibraryContext
from libris.core.models import Book, BookStatus, Loan
from libris.core.exceptions import (
    AlreadyBorrowedError,
    AlreadyReturnedError,
    BookBorrowedError,
    BookNotFoundError,
    InvalidRecordError,
    LoanNotFoundError,
    MonthlyLimitExceededError,
    ReaderHasOpenLoansError,
    ReaderNotFoundError,
    RecordExistsError,
    StorageFailureError,
)

JAN_1 = datetime.date(2024, 1, 1)


def assert_status_matches_ledger(library):
    for book in library.catalog.all_books():
        open_loan = library.ledger.open_loan_for_book(book.isbn)
        assert (book.status == BookStatus.BORROWED) == (open_loan is not None)


def test_borrow_then_return_scenario(library, clock, book, reader):
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    assert loan.due_date == datetime.date(2024, 1, 15)
    assert loan.returned is False
    assert library.catalog.find_book(book.isbn).status == BookStatus.BORROWED
    assert_status_matches_ledger(library)

    today = datetime.date(2024, 1, 20)
    overdue = library.analyzer.all_overdue_loans(today)
    assert [l.id for l in overdue] == [loan.id]
    assert overdue[0].days_overdue(today) == 5

    returned = library.lending.return_loan(loan.id, today)
    assert returned.returned is True
    assert returned.returned_on == today
    assert library.catalog.find_book(book.isbn).status == BookStatus.AVAILABLE
    assert library.analyzer.all_overdue_loans(today) == []
    assert_status_matches_ledger(library)


def test_due_date_is_borrow_date_plus_allowance(library, book):
    reader = library.lending.register_reader(make_reader("R007", max_loan_days=21))
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, datetime.date(2024, 2, 20))
    assert loan.due_date == datetime.date(2024, 2, 20) + datetime.timedelta(days=21)
    assert loan.due_date - loan.borrow_date == datetime.timedelta(days=reader.max_loan_days)


def test_due_date_is_not_recomputed_when_allowance_changes(library, book, reader):
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    library.lending.update_reader(reader.subscriber_number, max_loan_days=60)
    assert library.ledger.get(loan.id).due_date == datetime.date(2024, 1, 15)


def test_overdue_starts_the_day_after_due_date(library, book, reader):
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    due = loan.due_date
    assert library.lending.is_overdue(loan, due) is False
    assert library.lending.is_overdue(loan, due + datetime.timedelta(days=1)) is True
    assert loan.days_overdue(due) == 0


def test_second_borrow_of_open_book_fails(library, book, reader):
    first = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    other = library.lending.register_reader(make_reader("R002", email="r2@example.org"))

    for subscriber in (reader.subscriber_number, other.subscriber_number):
        with pytest.raises(AlreadyBorrowedError):
            library.lending.borrow(book.isbn, subscriber, JAN_1)

    assert [l.id for l in library.ledger.all()] == [first.id]
    assert library.catalog.find_book(book.isbn).status == BookStatus.BORROWED


def test_borrow_preconditions_in_order(library, book, reader):
    with pytest.raises(BookNotFoundError):
        library.lending.borrow("missing", "also-missing", JAN_1)
    with pytest.raises(ReaderNotFoundError):
        library.lending.borrow(book.isbn, "missing", JAN_1)
    library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    # Unknown reader still wins over an unavailable book
    with pytest.raises(ReaderNotFoundError):
        library.lending.borrow(book.isbn, "missing", JAN_1)


def test_return_twice_fails_without_changes(library, book, reader):
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    library.lending.return_loan(loan.id, JAN_1)
    with pytest.raises(AlreadyReturnedError):
        library.lending.return_loan(loan.id, datetime.date(2024, 1, 5))
    assert library.ledger.get(loan.id).returned_on == JAN_1
    assert library.catalog.find_book(book.isbn).status == BookStatus.AVAILABLE


def test_return_unknown_loan(library):
    with pytest.raises(LoanNotFoundError):
        library.lending.return_loan("no-such-loan", JAN_1)


def test_return_by_isbn(library, book, reader):
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    assert library.lending.return_book(book.isbn, JAN_1).id == loan.id
    with pytest.raises(LoanNotFoundError):
        library.lending.return_book(book.isbn, JAN_1)


def test_book_can_be_borrowed_again_after_return(library, book, reader):
    first = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    library.lending.return_loan(first.id, datetime.date(2024, 1, 3))
    second = library.lending.borrow(book.isbn, reader.subscriber_number, datetime.date(2024, 1, 4))
    assert second.id != first.id
    assert len(library.ledger.by_reader(reader.subscriber_number)) == 2
    assert_status_matches_ledger(library)


def test_monthly_limit_is_advisory_by_default(library, reader):
    for i in range(3):
        library.lending.add_book(make_book(isbn=f"isbn-{i}"))
    library.lending.borrow("isbn-0", reader.subscriber_number, datetime.date(2024, 1, 2))
    library.lending.borrow("isbn-1", reader.subscriber_number, datetime.date(2024, 1, 10))

    check = library.lending.check_borrow("isbn-2", reader.subscriber_number, datetime.date(2024, 1, 20))
    assert check.monthly_loan_count == 2
    assert check.limit_reached is True

    loan = library.lending.borrow("isbn-2", reader.subscriber_number, datetime.date(2024, 1, 20))
    assert loan.returned is False


def test_monthly_limit_enforced_unless_forced(clock):
    with LibraryContext("sqlite:///:memory:", clock=clock, enforce_monthly_limit=True,
                        echo=False) as library:
        reader = library.lending.register_reader(make_reader())
        for i in range(3):
            library.lending.add_book(make_book(isbn=f"isbn-{i}"))
        library.lending.borrow("isbn-0", reader.subscriber_number, datetime.date(2024, 1, 2))
        library.lending.borrow("isbn-1", reader.subscriber_number, datetime.date(2024, 1, 3))

        with pytest.raises(MonthlyLimitExceededError) as excinfo:
            library.lending.borrow("isbn-2", reader.subscriber_number, datetime.date(2024, 1, 31))
        assert excinfo.value.count == 2
        assert excinfo.value.limit == 2
        assert library.catalog.find_book("isbn-2").status == BookStatus.AVAILABLE

        # A new month starts a new count
        library.lending.borrow("isbn-2", reader.subscriber_number, datetime.date(2024, 2, 1))


def test_monthly_limit_force_override(clock):
    with LibraryContext("sqlite:///:memory:", clock=clock, enforce_monthly_limit=True,
                        monthly_limit=1, echo=False) as library:
        reader = library.lending.register_reader(make_reader())
        library.lending.add_book(make_book(isbn="a"))
        library.lending.add_book(make_book(isbn="b"))
        library.lending.borrow("a", reader.subscriber_number, JAN_1)
        loan = library.lending.borrow("b", reader.subscriber_number, JAN_1, force=True)
        assert loan.book_isbn == "b"


def test_check_borrow_reports_overdue_loans(library, reader):
    library.lending.add_book(make_book(isbn="late"))
    library.lending.add_book(make_book(isbn="next"))
    late = library.lending.borrow("late", reader.subscriber_number, datetime.date(2023, 11, 1))

    check = library.lending.check_borrow("next", reader.subscriber_number, JAN_1)
    assert [l.id for l in check.overdue_loans] == [late.id]
    assert check.monthly_loan_count == 0
    # Overdue books do not block a borrow
    library.lending.borrow("next", reader.subscriber_number, JAN_1)


def test_borrow_commit_failure_leaves_nothing_behind(library, book, reader):
    with patch.object(library.session, "commit", side_effect=SQLAlchemyError("disk full")):
        with pytest.raises(StorageFailureError):
            library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)

    assert library.ledger.all() == []
    assert library.catalog.find_book(book.isbn).status == BookStatus.AVAILABLE
    assert_status_matches_ledger(library)


def test_borrow_status_write_failure_undoes_written_loan(library, book, reader):
    session = library.session
    real_flush = session.flush
    pending_loans = []

    def flush(*args, **kwargs):
        # The book only becomes dirty once the loan row is already flushed
        if any(isinstance(o, Book) for o in session.dirty):
            pending_loans.extend(o for o in session.identity_map.values() if isinstance(o, Loan))
            raise SQLAlchemyError("status write failed")
        return real_flush(*args, **kwargs)

    with patch.object(session, "flush", side_effect=flush):
        with pytest.raises(StorageFailureError):
            library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)

    assert len(pending_loans) == 1
    assert library.ledger.all() == []
    assert library.catalog.find_book(book.isbn).status == BookStatus.AVAILABLE
    assert_status_matches_ledger(library)


def test_return_commit_failure_leaves_loan_open(library, book, reader):
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    with patch.object(library.session, "commit", side_effect=SQLAlchemyError("disk full")):
        with pytest.raises(StorageFailureError):
            library.lending.return_loan(loan.id, JAN_1)

    assert library.ledger.get(loan.id).returned is False
    assert library.catalog.find_book(book.isbn).status == BookStatus.BORROWED
    assert_status_matches_ledger(library)


def test_reader_without_allowance_falls_back_to_default(library, book):
    library.lending.import_readers([make_reader("R000", max_loan_days=0)])
    loan = library.lending.borrow(book.isbn, "R000", JAN_1)
    assert loan.due_date == JAN_1 + datetime.timedelta(days=library.lending.default_loan_days)


# Catalog commands

def test_add_book_twice(library, book):
    with pytest.raises(RecordExistsError):
        library.lending.add_book(make_book())


def test_added_book_is_always_available(library):
    book = make_book(isbn="x")
    book.status = BookStatus.BORROWED
    assert library.lending.add_book(book).status == BookStatus.AVAILABLE


def test_update_book_keeps_status_and_isbn(library, book, reader):
    library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    updated = library.lending.update_book(book.isbn, title="The Stranger", year=1946)
    assert updated.title == "The Stranger"
    assert updated.author == "Albert Camus"
    assert updated.status == BookStatus.BORROWED

    with pytest.raises(InvalidRecordError):
        library.lending.update_book(book.isbn, status=BookStatus.AVAILABLE)
    with pytest.raises(InvalidRecordError):
        library.lending.update_book(book.isbn, isbn="other")
    with pytest.raises(BookNotFoundError):
        library.lending.update_book("missing", title="x")


def test_delete_borrowed_book_fails(library, book, reader):
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    with pytest.raises(BookBorrowedError):
        library.lending.remove_book(book.isbn)
    assert library.catalog.find_book(book.isbn) is not None

    library.lending.return_loan(loan.id, JAN_1)
    assert library.lending.remove_book(book.isbn) is True
    assert library.catalog.find_book(book.isbn) is None
    # History survives the deletion
    assert library.ledger.get(loan.id).book_isbn == book.isbn


def test_delete_reader_with_open_loan_fails(library, book, reader):
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    with pytest.raises(ReaderHasOpenLoansError):
        library.lending.remove_reader(reader.subscriber_number)

    library.lending.return_loan(loan.id, JAN_1)
    assert library.lending.remove_reader(reader.subscriber_number) is True
    with pytest.raises(ReaderNotFoundError):
        library.lending.remove_reader(reader.subscriber_number)


def test_register_reader_validation(library, reader):
    with pytest.raises(RecordExistsError):
        library.lending.register_reader(make_reader())
    with pytest.raises(InvalidRecordError):
        library.lending.register_reader(make_reader("R009", max_loan_days=0))
    with pytest.raises(InvalidRecordError):
        library.lending.update_reader(reader.subscriber_number, max_loan_days=-3)


def test_update_reader_keeps_subscriber_number(library, reader):
    with pytest.raises(InvalidRecordError):
        library.lending.update_reader(reader.subscriber_number, subscriber_number="R999")
    assert library.catalog.find_reader("R999") is None

    updated = library.lending.update_reader(reader.subscriber_number, email="curie@example.org")
    assert updated.subscriber_number == reader.subscriber_number
    assert updated.email == "curie@example.org"


def test_import_skips_known_and_duplicate_identifiers(library, book):
    borrowed = make_book(isbn="new-1")
    borrowed.status = BookStatus.BORROWED
    count = library.lending.import_books([
        make_book(),                      # already in catalog
        borrowed,
        make_book(isbn="new-1"),          # duplicate within the batch
        make_book(isbn="new-2"),
    ])
    assert count == 2
    assert library.catalog.find_book("new-1").status == BookStatus.AVAILABLE
    assert len(library.catalog.all_books()) == 3

    assert library.lending.import_readers([make_reader("A"), make_reader("A"), make_reader("B")]) == 2


def test_listeners_are_told_about_committed_changes(library, book, reader):
    events = []
    library.lending.subscribe(lambda event, payload: events.append(event))

    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    with pytest.raises(AlreadyBorrowedError):
        library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    library.lending.return_loan(loan.id, JAN_1)
    library.lending.remove_book(book.isbn)

    assert events == ["loan_created", "loan_returned", "book_removed"]


def test_failing_listener_does_not_undo_borrow(library, book, reader):
    def broken(event, payload):
        raise RuntimeError("display went away")

    library.lending.subscribe(broken)
    loan = library.lending.borrow(book.isbn, reader.subscriber_number, JAN_1)
    assert library.ledger.get(loan.id) is not None

    library.lending.unsubscribe(broken)
    assert library.lending._listeners == []
