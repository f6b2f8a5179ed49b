"""
Response schemas for Draftwise API
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any
from datetime import datetime


class TokenResponse(BaseModel):
    """Authentication token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class BlogResponse(BaseModel):
    """Blog draft with whatever enrichment it has so far"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    topic_keyword: str
    urls: List[str] = Field(default_factory=list)
    table_of_content: Optional[str] = None
    toc_source_strategy: Optional[str] = None
    toc_source_url: Optional[str] = None
    keyword_suggestions: Optional[List[Dict[str, Any]]] = None
    keywords_to_include: Optional[List[Dict[str, Any]]] = None
    background_description: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


class OutlineResponse(BaseModel):
    """Result of a TOC extraction"""
    table_of_content: str
    source_strategy: str = Field(..., description="direct_ai, scrape_cleaned, scrape_raw_formatted, or not_found")
    source_url: Optional[str] = None
    found: bool
    billed: bool
    credits_remaining: Optional[int] = None
    blog_id: Optional[int] = Field(None, description="Blog holding the stored product")


class KeywordSuggestionsResponse(BaseModel):
    """Keyword explorer ideas"""
    keywords: List[Dict[str, Any]]
    total: int
    attempts_used: int
    billed: bool
    credits_remaining: Optional[int] = None
    blog_id: Optional[int] = Field(None, description="Blog holding the stored product")


class KeywordsToIncludeResponse(BaseModel):
    """NLP keywords to include in the article"""
    keywords: List[Dict[str, Any]]
    total: int
    attempts_used: int
    billed: bool
    credits_remaining: Optional[int] = None
    blog_id: Optional[int] = Field(None, description="Blog holding the stored product")


class DescriptionResponse(BaseModel):
    """Background description of an outline"""
    description: str
    billed: bool
    credits_remaining: Optional[int] = None
    blog_id: Optional[int] = Field(None, description="Blog holding the stored product")


class CredentialStatusResponse(BaseModel):
    """Keyword tool credential status; secrets are never echoed back"""
    configured: bool
    is_valid: bool
    last_validated: Optional[datetime] = None


class CreditBalanceResponse(BaseModel):
    """Current credit state of the caller"""
    credits: int
    total_credits_used: int
    operation_costs: Dict[str, int]


class CreditTransactionResponse(BaseModel):
    """One row of the credit log"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    operation: str
    amount: int
    status: str
    blog_id: Optional[int] = None
    details: Optional[str] = None
    created_at: Optional[datetime] = None


class CreditAdjustmentResponse(BaseModel):
    """Admin credit adjustment outcome"""
    user_id: int
    old_credits: int
    new_credits: int
    difference: int


class SerpResultResponse(BaseModel):
    """One organic search result"""
    title: str
    url: str
    description: str = ""
    origin_site: str = ""
    position: int
    source: str = Field(..., description="Competitor name in upper case, or GENERAL")


class ScrapeResponse(BaseModel):
    """Organic results for a query, competitor pages first"""
    message: str
    results: List[SerpResultResponse]
    query: str
    total_results: int
