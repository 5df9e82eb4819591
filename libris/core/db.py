import logging
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from libris.configs import DB_URI, DEBUG
from libris.core.exceptions import StorageFailureError

logger = logging.getLogger(__name__)

Base = declarative_base()

def make_engine(uri=DB_URI, echo=DEBUG):
    engine_kwargs = {'echo': echo}
    if uri.startswith('sqlite'):
        engine_kwargs['connect_args'] = {'check_same_thread': False}
        # An in-memory database lives only as long as its one connection
        if ':memory:' in uri or uri == 'sqlite://':
            engine_kwargs['poolclass'] = StaticPool
    elif uri.startswith('postgresql'):
        engine_kwargs['client_encoding'] = 'utf8'
    return create_engine(uri, **engine_kwargs)

def make_session(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)()

def init(engine):
    """Creates the books, readers and loans tables if missing."""
    # Models must be registered on Base before create_all
    from libris.core import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.debug("Database initialized at %s", engine.url)

@contextmanager
def storage(session, action, commit=True):
    """Runs a unit of work against `session`, turning any SQLAlchemy
    failure into a StorageFailureError after rolling the session back.

    With `commit=False` the caller owns the transaction; nested uses
    let several writes share a single commit.
    """
    try:
        yield session
        if commit:
            session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Failed to %s: %s", action, e)
        raise StorageFailureError(f"Failed to {action}: {e}.") from e
