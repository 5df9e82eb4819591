#!/usr/bin/env python

"""
    Wiring for one Libris library: the database session, both stores,
    the lending engine and the analyzer, sharing one lock.

    Build one per process (or per test) and pass it around.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
import threading
from typing import Callable, Optional

from libris import configs
from libris.core import db
from libris.core.catalog import CatalogStore
from libris.core.ledger import LoanLedger
from libris.core.engine import LoanEngine
from libris.core.stats import LoanAnalyzer

logger = logging.getLogger(__name__)


class LibraryContext:

    def __init__(self, uri: Optional[str] = None,
                 clock: Callable[[], datetime.date] = datetime.date.today,
                 monthly_limit: int = configs.MONTHLY_LOAN_LIMIT,
                 enforce_monthly_limit: bool = configs.ENFORCE_MONTHLY_LIMIT,
                 default_loan_days: int = configs.DEFAULT_LOAN_DAYS,
                 echo: bool = configs.DEBUG):
        self.uri = uri or configs.DB_URI
        self.clock = clock
        self.lock = threading.RLock()
        self.engine = db.make_engine(self.uri, echo=echo)
        db.init(self.engine)
        self.session = db.make_session(self.engine)
        self.catalog = CatalogStore(self.session)
        self.ledger = LoanLedger(self.session)
        self.lending = LoanEngine(
            self.catalog, self.ledger, lock=self.lock,
            monthly_limit=monthly_limit,
            enforce_monthly_limit=enforce_monthly_limit,
            default_loan_days=default_loan_days,
        )
        self.analyzer = LoanAnalyzer(self.catalog, self.ledger, lock=self.lock)
        logger.info("Library opened on %s", self.engine.url)

    def today(self) -> datetime.date:
        return self.clock()

    def close(self):
        self.session.close()
        self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
