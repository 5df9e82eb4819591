import datetime
import pytest

from libris.core.context import LibraryContext
from libris.core.models import Book, Reader


class Clock:
    """A settable stand-in for date.today."""

    def __init__(self, day):
        self.day = day

    def __call__(self):
        return self.day

    def advance(self, days):
        self.day += datetime.timedelta(days=days)


def make_book(isbn="9782070360024", title="L'Étranger", author="Albert Camus",
              year=1942, publisher="Gallimard"):
    return Book(isbn=isbn, title=title, author=author, year=year, publisher=publisher)


def make_reader(subscriber_number="R001", first_name="Marie", last_name="Curie",
                email="marie.curie@example.org", max_loan_days=14):
    return Reader(subscriber_number=subscriber_number, first_name=first_name,
                  last_name=last_name, email=email, max_loan_days=max_loan_days)


@pytest.fixture
def clock():
    return Clock(datetime.date(2024, 1, 1))


@pytest.fixture
def library(clock):
    library = LibraryContext("sqlite:///:memory:", clock=clock, echo=False)
    try:
        yield library
    finally:
        library.close()


@pytest.fixture
def book(library):
    return library.lending.add_book(make_book())


@pytest.fixture
def reader(library):
    return library.lending.register_reader(make_reader())
