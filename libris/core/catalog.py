#!/usr/bin/env python

"""
    Catalog store for Libris: the authoritative set of books and readers.

    Lookups are by identifier only. Writes commit by default; pass
    `commit=False` to stage a write inside a caller's transaction.
    Storage failures surface as StorageFailureError.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from typing import List, Optional

from libris.core.db import storage
from libris.core.models import Book, BookStatus, Reader

logger = logging.getLogger(__name__)


class CatalogStore:

    def __init__(self, session):
        self.session = session

    def find_book(self, isbn: str) -> Optional[Book]:
        with storage(self.session, f"find book {isbn}", commit=False):
            return self.session.get(Book, isbn)

    def find_reader(self, subscriber_number: str) -> Optional[Reader]:
        with storage(self.session, f"find reader {subscriber_number}", commit=False):
            return self.session.get(Reader, subscriber_number)

    def all_books(self) -> List[Book]:
        with storage(self.session, "list books", commit=False):
            return self.session.query(Book).all()

    def all_readers(self) -> List[Reader]:
        with storage(self.session, "list readers", commit=False):
            return self.session.query(Reader).all()

    def upsert_book(self, book: Book, commit: bool = True) -> Book:
        with storage(self.session, f"save book {book.isbn}", commit=commit):
            book = self.session.merge(book)
            self.session.flush()
        return book

    def upsert_reader(self, reader: Reader, commit: bool = True) -> Reader:
        with storage(self.session, f"save reader {reader.subscriber_number}", commit=commit):
            reader = self.session.merge(reader)
            self.session.flush()
        return reader

    def set_book_status(self, book: Book, status: BookStatus, commit: bool = True) -> Book:
        with storage(self.session, f"set status of book {book.isbn}", commit=commit):
            book.status = status
            self.session.flush()
        return book

    def delete_book(self, isbn: str, commit: bool = True) -> bool:
        with storage(self.session, f"delete book {isbn}", commit=commit):
            if not (book := self.session.get(Book, isbn)):
                return False
            self.session.delete(book)
            self.session.flush()
        return True

    def delete_reader(self, subscriber_number: str, commit: bool = True) -> bool:
        with storage(self.session, f"delete reader {subscriber_number}", commit=commit):
            if not (reader := self.session.get(Reader, subscriber_number)):
                return False
            self.session.delete(reader)
            self.session.flush()
        return True
