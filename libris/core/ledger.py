#!/usr/bin/env python

"""
    Loan ledger for Libris.

    Loans are appended and transitioned from open to returned exactly
    once; they are never deleted.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
from typing import List, Optional

from libris.core.db import storage
from libris.core.models import Loan
from libris.core.exceptions import LoanNotFoundError, AlreadyReturnedError

logger = logging.getLogger(__name__)


def month_bounds(day: datetime.date):
    """First day of `day`'s month and first day of the following month."""
    first = day.replace(day=1)
    if first.month == 12:
        return first, first.replace(year=first.year + 1, month=1)
    return first, first.replace(month=first.month + 1)


class LoanLedger:

    def __init__(self, session):
        self.session = session

    def _query(self):
        return self.session.query(Loan).order_by(Loan.created_at)

    def insert(self, loan: Loan, commit: bool = True) -> Loan:
        with storage(self.session, f"insert loan {loan.id}", commit=commit):
            self.session.add(loan)
            self.session.flush()
        return loan

    def get(self, loan_id: str) -> Optional[Loan]:
        with storage(self.session, f"find loan {loan_id}", commit=False):
            return self.session.get(Loan, loan_id)

    def mark_returned(self, loan_id: str, returned_on: Optional[datetime.date] = None,
                      commit: bool = True) -> Loan:
        """Transitions an open loan to returned.

        Raises:
            LoanNotFoundError: If no loan has this id.
            AlreadyReturnedError: If the loan was already returned.
        """
        if not (loan := self.get(loan_id)):
            raise LoanNotFoundError(f"Loan {loan_id} not found.")
        if loan.returned:
            raise AlreadyReturnedError(f"Loan {loan_id} was already returned.")
        with storage(self.session, f"return loan {loan_id}", commit=commit):
            loan.returned = True
            loan.returned_on = returned_on
            self.session.flush()
        return loan

    def all(self) -> List[Loan]:
        with storage(self.session, "list loans", commit=False):
            return self._query().all()

    def by_reader(self, subscriber_number: str) -> List[Loan]:
        with storage(self.session, f"list loans of {subscriber_number}", commit=False):
            return self._query().filter(
                Loan.reader_subscriber_number == subscriber_number
            ).all()

    def open_loan_for_book(self, isbn: str) -> Optional[Loan]:
        with storage(self.session, f"find open loan for {isbn}", commit=False):
            return self._query().filter(
                Loan.book_isbn == isbn,
                Loan.is_open
            ).first()

    def open_loans_for_reader(self, subscriber_number: str) -> List[Loan]:
        with storage(self.session, f"list open loans of {subscriber_number}", commit=False):
            return self._query().filter(
                Loan.reader_subscriber_number == subscriber_number,
                Loan.is_open
            ).all()

    def overdue(self, today: datetime.date, subscriber_number: Optional[str] = None) -> List[Loan]:
        with storage(self.session, "list overdue loans", commit=False):
            query = self._query().filter(Loan.is_open, Loan.due_date < today)
            if subscriber_number is not None:
                query = query.filter(Loan.reader_subscriber_number == subscriber_number)
            return query.all()

    def count_in_month(self, subscriber_number: str, day: datetime.date) -> int:
        """Number of loans the reader started in `day`'s calendar month."""
        first, following = month_bounds(day)
        with storage(self.session, f"count monthly loans of {subscriber_number}", commit=False):
            return self.session.query(Loan).filter(
                Loan.reader_subscriber_number == subscriber_number,
                Loan.borrow_date >= first,
                Loan.borrow_date < following
            ).count()
