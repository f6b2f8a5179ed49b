"""
Database setup and session management for Draftwise
Supports SQLite (local dev) and PostgreSQL (production)
"""
import logging
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from pathlib import Path

logger = logging.getLogger(__name__)

# Check for PostgreSQL connection string
DATABASE_URL = os.getenv("DATABASE_URL")

if DATABASE_URL:
    # Production: Use PostgreSQL
    # Some hosts hand out postgres:// but SQLAlchemy needs postgresql://
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

    engine = create_engine(
        DATABASE_URL,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        echo=False
    )
    logger.info("Using PostgreSQL database")
else:
    # Local development: Use SQLite
    BASE_DIR = Path(__file__).parent.parent
    DATABASE_FILE = BASE_DIR / "draftwise.db"
    DATABASE_URL = f"sqlite:///{DATABASE_FILE}"

    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},  # Needed for SQLite
        echo=False
    )
    logger.info(f"Using SQLite database at {DATABASE_FILE}")

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency function to get database session
    Use with FastAPI Depends()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database - create all tables
    Call this on application startup
    """
    # Import models so they register on Base.metadata
    from draftwise.models import database  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
