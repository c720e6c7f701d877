"""Database connection and session management for the policy archive."""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from policygate.core.config import SQLALCHEMY_DATABASE_URL

# SQLite needs check_same_thread off because FastAPI serves sync routes from a threadpool
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None):
    """Create the archive tables if they are missing."""
    # Models must be imported so their tables are registered on Base.metadata
    from policygate import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)


def ping(session) -> None:
    """Raises if the database cannot answer a trivial query."""
    session.execute(text("SELECT 1"))


def get_db():
    """Generator function for FastAPI dependency injection.
    Creates a session, yields it, and closes it after usage to ensure proper cleanup.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
