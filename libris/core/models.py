#!/usr/bin/env python

"""
    Models for Libris,
    including the books, readers and loans tables.

    Loans reference books and readers by identifier only, so catalog
    records may be edited or removed without rewriting loan history.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import enum

from sqlalchemy import (
    Column, String, Boolean, Integer, Date, DateTime,
    Enum as SQLAlchemyEnum, false
)
from sqlalchemy.ext.hybrid import hybrid_property
from libris.core.db import Base


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class BookStatus(enum.Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"


class Book(Base):
    __tablename__ = 'books'

    isbn = Column(String(32), primary_key=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    year = Column(Integer, default=0, nullable=False)
    publisher = Column(String(255), default="", nullable=False)
    status = Column(SQLAlchemyEnum(BookStatus), default=BookStatus.AVAILABLE, nullable=False)

    @hybrid_property
    def is_available(self):
        return self.status == BookStatus.AVAILABLE

    def __repr__(self):
        return f"<Book {self.isbn} {self.title!r} {self.status.name if self.status else None}>"


class Reader(Base):
    __tablename__ = 'readers'

    subscriber_number = Column(String(50), primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    max_loan_days = Column(Integer, nullable=False)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Reader {self.subscriber_number} {self.full_name!r}>"


class Loan(Base):
    __tablename__ = 'loans'

    id = Column(String(36), primary_key=True)
    book_isbn = Column(String(32), index=True, nullable=False)
    reader_subscriber_number = Column(String(50), index=True, nullable=False)
    borrow_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    returned = Column(Boolean, default=False, nullable=False)
    returned_on = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    @hybrid_property
    def is_open(self):
        """True until the loan has been returned."""
        return not self.returned

    @is_open.expression
    def is_open(cls):
        return cls.returned == false()

    def is_overdue(self, today: datetime.date) -> bool:
        """An open loan is overdue the day after its due date, never on it."""
        return not self.returned and self.due_date < today

    def days_overdue(self, today: datetime.date) -> int:
        if not self.is_overdue(today):
            return 0
        return (today - self.due_date).days

    def __repr__(self):
        state = "returned" if self.returned else "open"
        return f"<Loan {self.id} {self.book_isbn}->{self.reader_subscriber_number} due {self.due_date} {state}>"
