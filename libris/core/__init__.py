#!/usr/bin/env python

"""
    Core module for Libris: storage, lending rules and statistics

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from libris.core.context import LibraryContext

__all__ = ["LibraryContext"]
