#!/usr/bin/env python

"""
    Libris, a small library lending desk:
    books, readers and the loans that tie them together.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

__version__ = "0.1.0"
