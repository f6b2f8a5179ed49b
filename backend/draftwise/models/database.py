"""
SQLAlchemy database models for Draftwise
"""
import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from draftwise.database import Base


class CreditOperation(str, enum.Enum):
    """Reasons recorded on the credit ledger"""
    BLOG_CREATION = "blog_creation"
    TOC_EXTRACTION = "toc_extraction"
    KEYWORD_RESEARCH = "keyword_research"
    DESCRIPTION_GENERATION = "description_generation"
    KEYWORDS_TO_INCLUDE = "keywords_to_include"
    INITIAL_GRANT = "initial_grant"
    ADMIN_CREDIT_ADDITION = "admin_credit_addition"
    ADMIN_CREDIT_DEDUCTION = "admin_credit_deduction"
    REFUND = "refund"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class User(Base):
    """User accounts; also the credit account row"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(String, default="user")  # "admin", "user"
    is_active = Column(Boolean, default=True)
    # Only CreditService writes these two columns
    credits = Column(Integer, nullable=False, default=0)
    total_credits_used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)

    blogs = relationship("Blog", back_populates="owner", cascade="all, delete-orphan")


class CreditTransaction(Base):
    """Append-only ledger entries. amount > 0 is a debit, amount < 0 a credit."""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    operation = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    blog_id = Column(Integer, ForeignKey("blogs.id"), nullable=True)
    status = Column(String, nullable=False, default=TransactionStatus.COMPLETED.value)
    details = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class Blog(Base):
    """Draft container; enrichment products are stored here before billing"""
    __tablename__ = "blogs"

    id = Column(Integer, primary_key=True, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    topic_keyword = Column(String, nullable=False)
    urls = Column(JSON, default=list)
    table_of_content = Column(Text, nullable=True)
    toc_source_strategy = Column(String, nullable=True)
    toc_source_url = Column(String, nullable=True)
    keyword_suggestions = Column(JSON, nullable=True)
    keywords_to_include = Column(JSON, nullable=True)
    background_description = Column(Text, nullable=True)
    status = Column(String, default="draft")  # draft, processing, pending, completed
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="blogs")


class KeywordToolCredential(Base):
    """Session credentials for the keyword research tool, one row per user"""
    __tablename__ = "keyword_tool_credentials"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    cookie = Column(Text, default="")
    xsrf_token = Column(Text, default="")
    is_valid = Column(Boolean, default=False)
    last_validated = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
