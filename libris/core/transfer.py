#!/usr/bin/env python

"""
    Catalog import and export for Libris.

    Books and readers travel as JSON arrays or as the
    <bibliotheque><livre/>...<lecteur/></bibliotheque> XML schema.
    Parsed records are transient model instances; persisting them is
    the lending engine's job.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import json
import logging
import xml.etree.ElementTree as ET
from typing import Iterable, List, Optional

from libris.core.models import Book, BookStatus, Reader
from libris.core.exceptions import InvalidRecordError

logger = logging.getLogger(__name__)

XML_ROOT = "bibliotheque"
XML_BOOK = "livre"
XML_READER = "lecteur"
XML_BORROWED = "emprunté"
XML_AVAILABLE = "disponible"

BOOK_XML_TAGS = {
    "isbn": "isbn",
    "title": "titre",
    "author": "auteur",
    "year": "annee",
    "publisher": "editeur",
}
READER_XML_TAGS = {
    "subscriber_number": "numeroAbonne",
    "first_name": "prenom",
    "last_name": "nom",
    "email": "email",
    "max_loan_days": "joursEmpruntMax",
}
READER_JSON_KEYS = {
    "subscriber_number": "subscriberNumber",
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
    "max_loan_days": "maxLoanDays",
}


def _to_int(value, default=0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _status(value: Optional[str]) -> BookStatus:
    value = (value or "").strip().lower()
    if value in (XML_BORROWED, BookStatus.BORROWED.value, BookStatus.BORROWED.name.lower()):
        return BookStatus.BORROWED
    return BookStatus.AVAILABLE


def _load_json(text: str) -> list:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidRecordError(f"Invalid JSON: {e}.") from e
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        raise InvalidRecordError("Expected a JSON array of objects.")
    return data


def _load_xml(text: str) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as e:
        raise InvalidRecordError(f"Invalid XML: {e}.") from e


# JSON

def book_to_dict(book: Book) -> dict:
    return {
        "isbn": book.isbn,
        "title": book.title,
        "author": book.author,
        "year": book.year,
        "publisher": book.publisher,
        "status": book.status.name.lower() if book.status else None,
    }


def reader_to_dict(reader: Reader) -> dict:
    return {key: getattr(reader, attr) for attr, key in READER_JSON_KEYS.items()}


def books_to_json(books: Iterable[Book]) -> str:
    return json.dumps([book_to_dict(b) for b in books], ensure_ascii=False, indent=2)


def readers_to_json(readers: Iterable[Reader]) -> str:
    return json.dumps([reader_to_dict(r) for r in readers], ensure_ascii=False, indent=2)


def books_from_json(text: str) -> List[Book]:
    books = []
    for data in _load_json(text):
        if not data.get("isbn"):
            raise InvalidRecordError("Every book needs an isbn.")
        books.append(Book(
            isbn=str(data["isbn"]).strip(),
            title=data.get("title") or "",
            author=data.get("author") or "",
            year=_to_int(data.get("year")),
            publisher=data.get("publisher") or "",
            status=_status(data.get("status")),
        ))
    return books


def readers_from_json(text: str) -> List[Reader]:
    readers = []
    for data in _load_json(text):
        if not data.get("subscriberNumber"):
            raise InvalidRecordError("Every reader needs a subscriberNumber.")
        readers.append(Reader(
            subscriber_number=str(data["subscriberNumber"]).strip(),
            first_name=data.get("firstName") or "",
            last_name=data.get("lastName") or "",
            email=data.get("email") or "",
            max_loan_days=_to_int(data.get("maxLoanDays")),
        ))
    return readers


# XML

def books_from_xml(text: str) -> List[Book]:
    """Parses <livre> elements. A non-numeric <annee> reads as 0 and
    <statut> is "emprunté" or "disponible"."""
    books = []
    for node in _load_xml(text).iter(XML_BOOK):
        fields = {attr: (node.findtext(tag) or "").strip() for attr, tag in BOOK_XML_TAGS.items()}
        if not fields["isbn"]:
            logger.warning("Skipping <%s> without isbn", XML_BOOK)
            continue
        fields["year"] = _to_int(fields["year"])
        books.append(Book(status=_status(node.findtext("statut")), **fields))
    return books


def readers_from_xml(text: str) -> List[Reader]:
    readers = []
    for node in _load_xml(text).iter(XML_READER):
        fields = {attr: (node.findtext(tag) or "").strip() for attr, tag in READER_XML_TAGS.items()}
        if not fields["subscriber_number"]:
            logger.warning("Skipping <%s> without numeroAbonne", XML_READER)
            continue
        fields["max_loan_days"] = _to_int(fields["max_loan_days"])
        readers.append(Reader(**fields))
    return readers


def _to_xml(records, element, tags, extra=None) -> str:
    root = ET.Element(XML_ROOT)
    for record in records:
        node = ET.SubElement(root, element)
        for attr, tag in tags.items():
            value = getattr(record, attr)
            ET.SubElement(node, tag).text = "" if value is None else str(value)
        if extra:
            for tag, value in extra(record).items():
                ET.SubElement(node, tag).text = value
    return ET.tostring(root, encoding="unicode")


def books_to_xml(books: Iterable[Book]) -> str:
    return _to_xml(
        books, XML_BOOK, BOOK_XML_TAGS,
        extra=lambda b: {
            "statut": XML_BORROWED if b.status == BookStatus.BORROWED else XML_AVAILABLE
        },
    )


def readers_to_xml(readers: Iterable[Reader]) -> str:
    return _to_xml(readers, XML_READER, READER_XML_TAGS)
