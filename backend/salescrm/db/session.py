from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from salescrm.core.config import settings

DATABASE_URL = settings.DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
elif DATABASE_URL.startswith("postgresql"):
    # Server-side guard so a stuck lookup cannot outlive the caller's timeout.
    statement_timeout_ms = int(
        max(settings.DIRECTORY_TIMEOUT_SECONDS, settings.MEMBER_LOAD_TIMEOUT_SECONDS) * 1000
    )
    connect_args = {"options": f"-c statement_timeout={statement_timeout_ms}"}

engine_kwargs = {"connect_args": connect_args, "pool_pre_ping": True}
if not DATABASE_URL.startswith("sqlite"):
    engine_kwargs.update(
        {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": settings.DB_POOL_TIMEOUT,
            "pool_recycle": settings.DB_POOL_RECYCLE,
        }
    )

engine = create_engine(DATABASE_URL, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def read_session(factory: sessionmaker = SessionLocal):
    """Short-lived session for reads that run off the request thread."""
    db: Session = factory()
    try:
        yield db
    finally:
        db.close()
