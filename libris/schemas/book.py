#!/usr/bin/env python
"""
    Book Schemas for Libris,
    the shapes of book records crossing the API boundary.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from pydantic import BaseModel, Field
from typing import Optional
from libris.core.models import BookStatus

class BookIn(BaseModel):

    isbn: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    year: int = 0
    publisher: str = ""

    class Config:
        str_strip_whitespace = True
        json_schema_extra = {
            "example": {
                "isbn": "9782070360024",
                "title": "L'Étranger",
                "author": "Albert Camus",
                "year": 1942,
                "publisher": "Gallimard"
            }
        }

class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    year: Optional[int] = None
    publisher: Optional[str] = None

    class Config:
        str_strip_whitespace = True

class Book(BaseModel):
    isbn: str
    title: str
    author: str
    year: int
    publisher: str
    status: BookStatus

    class Config:
        from_attributes = True
