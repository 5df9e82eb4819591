#!/usr/bin/env python

"""
    Overdue and statistics analyzer for Libris.

    Read-only computations over the loan ledger, with the catalog used
    for display names. Nothing here mutates either store.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import threading
from collections import Counter
from typing import Dict, List

from libris.configs import TOP_BOOKS_LIMIT
from libris.core.models import Loan


class LoanAnalyzer:

    def __init__(self, catalog, ledger, lock=None):
        self.catalog = catalog
        self.ledger = ledger
        self.lock = lock or threading.RLock()

    def all_overdue_loans(self, today: datetime.date) -> List[Loan]:
        with self.lock:
            return self.ledger.overdue(today)

    def overdue_loans_for_reader(self, subscriber_number: str, today: datetime.date) -> List[Loan]:
        with self.lock:
            return self.ledger.overdue(today, subscriber_number)

    def top_borrowed_books(self, n: int = TOP_BOOKS_LIMIT) -> Dict[str, int]:
        """ISBN -> loan count, highest first, at most `n` entries.

        Ties keep the order in which the ISBNs first appear in the ledger.
        """
        if n <= 0:
            return {}
        with self.lock:
            counts = Counter(loan.book_isbn for loan in self.ledger.all())
        # sorted() is stable and Counter keeps first-seen order
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        return dict(ranked[:n])

    def loans_count_by_reader(self) -> Dict[str, int]:
        """Subscriber number -> number of loans, returned ones included."""
        with self.lock:
            return dict(Counter(loan.reader_subscriber_number for loan in self.ledger.all()))

    def top_borrowed_titles(self, n: int = TOP_BOOKS_LIMIT) -> Dict[str, int]:
        with self.lock:
            titles = {}
            for isbn, count in self.top_borrowed_books(n).items():
                book = self.catalog.find_book(isbn)
                title = book.title if book else isbn
                titles[title] = titles.get(title, 0) + count
            return titles

    def loans_count_by_reader_name(self) -> Dict[str, int]:
        with self.lock:
            names = {}
            for number, count in self.loans_count_by_reader().items():
                reader = self.catalog.find_reader(number)
                name = reader.full_name if reader else number
                names[name] = names.get(name, 0) + count
            return names

    def summary(self, today: datetime.date) -> dict:
        with self.lock:
            loans = self.ledger.all()
            return {
                "books": len(self.catalog.all_books()),
                "readers": len(self.catalog.all_readers()),
                "loans": len(loans),
                "open_loans": sum(1 for loan in loans if loan.is_open),
                "overdue_loans": sum(1 for loan in loans if loan.is_overdue(today)),
            }
