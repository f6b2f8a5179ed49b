"""
Request schemas for Draftwise API
"""
from pydantic import BaseModel, Field
from typing import List, Optional


class LoginRequest(BaseModel):
    """Request for user login"""
    username: str
    password: str


class RegisterRequest(BaseModel):
    """Request for self-service signup"""
    email: str
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = None


class CreateBlogRequest(BaseModel):
    """Request to start a new blog draft"""
    topic_keyword: str = Field(..., min_length=1, description="Topic keyword for the blog")
    urls: List[str] = Field(default_factory=list, description="Competitor URLs, best first")


class ExtractOutlineRequest(BaseModel):
    """Request to extract a table of contents"""
    urls: List[str] = Field(..., min_length=1, description="Candidate URLs in priority order")
    blog_id: Optional[int] = Field(None, description="Blog to store the outline on")
    topic_keyword: Optional[str] = Field(None, description="Topic for the draft created when no blog_id is given")


class KeywordsToIncludeRequest(BaseModel):
    """Request for NLP keywords to include"""
    keyword: str = Field(..., min_length=1)
    blog_id: Optional[int] = None


class GenerateDescriptionRequest(BaseModel):
    """Request for a background description of an outline"""
    topic_keyword: str = Field(..., min_length=1)
    table_of_content: str = Field(..., min_length=1)
    blog_id: Optional[int] = None


class KeywordToolCredentialsRequest(BaseModel):
    """Keyword tool session credentials"""
    cookie: str = Field(..., min_length=1)
    xsrf_token: str = Field(..., min_length=1)


class UpdateCreditsRequest(BaseModel):
    """Admin credit adjustment"""
    credits: int = Field(..., ge=0, description="Non-negative amount")
    action: str = Field(..., description="'set', 'add', or 'subtract'")
    reason: Optional[str] = None


class ScrapeRequest(BaseModel):
    """Search query to find competitor pages for"""
    query: str = Field(..., description="Search query")
