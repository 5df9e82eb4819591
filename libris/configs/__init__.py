#!/usr/bin/env python

"""
    Configurations for Libris

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import os


# Determine environment
TESTING = os.getenv("TESTING", "false").lower() == "true"

# API server configuration
HOST = os.environ.get('LIBRIS_HOST', 'localhost')
PORT = int(os.environ.get('LIBRIS_PORT', 8080))
WORKERS = int(os.environ.get('LIBRIS_WORKERS', 1))
DEBUG = bool(int(os.environ.get('LIBRIS_DEBUG', 0)))
LOG_LEVEL = os.environ.get('LIBRIS_LOG_LEVEL', 'info')

OPTIONS = {
    'host': HOST,
    'port': PORT,
    'log_level': LOG_LEVEL,
    'reload': DEBUG,
    'workers': WORKERS,
}

# Database configuration
DB_URI = (
    "sqlite:///:memory:" if TESTING else
    os.environ.get('LIBRIS_DB_URI', 'sqlite:///libris.db')
)

# Lending policy
DEFAULT_LOAN_DAYS = int(os.environ.get('LIBRIS_DEFAULT_LOAN_DAYS', 14))
MONTHLY_LOAN_LIMIT = int(os.environ.get('LIBRIS_MONTHLY_LOAN_LIMIT', 2))
ENFORCE_MONTHLY_LIMIT = os.environ.get('LIBRIS_ENFORCE_MONTHLY_LIMIT', 'false').lower() == 'true'
TOP_BOOKS_LIMIT = int(os.environ.get('LIBRIS_TOP_BOOKS_LIMIT', 10))

__all__ = [
    'HOST', 'PORT', 'DEBUG', 'LOG_LEVEL', 'OPTIONS', 'DB_URI', 'TESTING',
    'DEFAULT_LOAN_DAYS', 'MONTHLY_LOAN_LIMIT', 'ENFORCE_MONTHLY_LIMIT',
    'TOP_BOOKS_LIMIT',
]
