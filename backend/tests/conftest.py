"""Shared fixtures: a throwaway SQLite database per test."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from draftwise.database import Base
from draftwise.models.database import User


@pytest.fixture
def engine(tmp_path):
    db_engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Create a user row holding `credits` with no ledger history"""

    def _make(email: str = "writer@example.com", credits: int = 0, role: str = "user") -> User:
        user = User(email=email, hashed_password="x", role=role, credits=credits, total_credits_used=0)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make
