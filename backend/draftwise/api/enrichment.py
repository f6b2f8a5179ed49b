"""
Enrichment API endpoints: outline, keyword research, description, and the
keyword tool credentials they depend on
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from draftwise.api.auth import get_current_user_from_token
from draftwise.database import get_db
from draftwise.models.database import KeywordToolCredential, User
from draftwise.schemas.requests import (
    ExtractOutlineRequest,
    GenerateDescriptionRequest,
    KeywordsToIncludeRequest,
    KeywordToolCredentialsRequest,
)
from draftwise.schemas.responses import (
    CredentialStatusResponse,
    DescriptionResponse,
    KeywordSuggestionsResponse,
    KeywordsToIncludeResponse,
    OutlineResponse,
)
from draftwise.services.enrichment_service import EnrichmentService
from draftwise.services.exceptions import (
    ExternalServiceError,
    FatalServiceError,
    InsufficientCreditsError,
    OperationTimedOutError,
    ResourceNotFoundError,
    TransientServiceError,
    UnauthorizedError,
)
from draftwise.services.keyword_service import KeywordToolClient, KeywordToolCredentials
from draftwise.services.outline_service import SourceStrategy

logger = logging.getLogger(__name__)

router = APIRouter()


def get_enrichment_service(db: Session = Depends(get_db)) -> EnrichmentService:
    return EnrichmentService(db)


def to_http_exception(error: Exception) -> HTTPException:
    """Map service-layer failures onto HTTP responses"""
    if isinstance(error, InsufficientCreditsError):
        return HTTPException(status_code=402, detail={
            "message": f"Insufficient credits. You have {error.available} credits, but need {error.required}.",
            "available": error.available,
            "required": error.required,
            "type": "credits_exhausted",
            "operation": error.operation,
        })
    if isinstance(error, ResourceNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, OperationTimedOutError):
        return HTTPException(status_code=408, detail={
            "message": str(error),
            "attempts_used": error.attempts_used,
            "elapsed_ms": error.elapsed_ms,
        })
    if isinstance(error, UnauthorizedError) and error.service == "keyword_tool":
        return HTTPException(status_code=401, detail={
            "message": "Keyword tool credentials are invalid or expired. Please update them.",
            "needs_credential_update": True,
        })
    if isinstance(error, TransientServiceError):
        return HTTPException(status_code=503, detail=f"Upstream service unavailable: {error}")
    if isinstance(error, FatalServiceError):
        return HTTPException(status_code=502, detail=f"Upstream service rejected the request: {error}")
    return HTTPException(status_code=500, detail="Internal server error")


ENRICHMENT_ERRORS = (
    InsufficientCreditsError,
    ResourceNotFoundError,
    OperationTimedOutError,
    ExternalServiceError,
)


@router.post("/outline", response_model=OutlineResponse)
def extract_outline(
    request: ExtractOutlineRequest,
    current_user: User = Depends(get_current_user_from_token),
    service: EnrichmentService = Depends(get_enrichment_service),
):
    """
    Extract a Table of Contents from competitor URLs.
    Tries the URLs in order and stops at the first usable outline.
    """
    try:
        result = service.extract_outline(current_user.id, request.urls, request.blog_id, request.topic_keyword)
    except ENRICHMENT_ERRORS as e:
        raise to_http_exception(e)

    outline = result.product
    return OutlineResponse(
        table_of_content=outline.text,
        source_strategy=outline.source_strategy.value,
        source_url=outline.source_document,
        found=outline.source_strategy != SourceStrategy.NOT_FOUND,
        billed=result.billed,
        credits_remaining=result.credits_remaining,
        blog_id=result.blog_id,
    )


@router.get("/keywords", response_model=KeywordSuggestionsResponse)
def keyword_suggestions(
    input: str = Query(..., min_length=1, description="Seed keyword"),
    blog_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user_from_token),
    service: EnrichmentService = Depends(get_enrichment_service),
):
    """Top keyword ideas for a seed keyword"""
    try:
        result = service.keyword_suggestions(current_user.id, input.strip(), blog_id)
    except ENRICHMENT_ERRORS as e:
        raise to_http_exception(e)

    research = result.product
    return KeywordSuggestionsResponse(
        keywords=research.keywords,
        total=research.total,
        attempts_used=research.outcome.attempts_used,
        billed=result.billed,
        credits_remaining=result.credits_remaining,
        blog_id=result.blog_id,
    )


@router.post("/keywords-to-include", response_model=KeywordsToIncludeResponse)
def keywords_to_include(
    request: KeywordsToIncludeRequest,
    current_user: User = Depends(get_current_user_from_token),
    service: EnrichmentService = Depends(get_enrichment_service),
):
    """NLP terms the article should mention"""
    try:
        result = service.keywords_to_include(current_user.id, request.keyword.strip(), request.blog_id)
    except ENRICHMENT_ERRORS as e:
        raise to_http_exception(e)

    research = result.product
    return KeywordsToIncludeResponse(
        keywords=research.keywords,
        total=research.total,
        attempts_used=research.outcome.attempts_used,
        billed=result.billed,
        credits_remaining=result.credits_remaining,
        blog_id=result.blog_id,
    )


@router.post("/description", response_model=DescriptionResponse)
def generate_description(
    request: GenerateDescriptionRequest,
    current_user: User = Depends(get_current_user_from_token),
    service: EnrichmentService = Depends(get_enrichment_service),
):
    try:
        result = service.generate_description(
            current_user.id, request.topic_keyword, request.table_of_content, request.blog_id
        )
    except ENRICHMENT_ERRORS as e:
        raise to_http_exception(e)

    return DescriptionResponse(
        description=result.product,
        billed=result.billed,
        credits_remaining=result.credits_remaining,
        blog_id=result.blog_id,
    )


# ==================== Keyword tool credentials ====================

def _credential_status(row: Optional[KeywordToolCredential]) -> CredentialStatusResponse:
    if row is None:
        return CredentialStatusResponse(configured=False, is_valid=False)
    return CredentialStatusResponse(
        configured=bool(row.cookie and row.xsrf_token),
        is_valid=bool(row.is_valid),
        last_validated=row.last_validated,
    )


@router.get("/credentials", response_model=CredentialStatusResponse)
def get_credentials(
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    """Whether keyword tool credentials are stored and still accepted"""
    row = db.query(KeywordToolCredential).filter(KeywordToolCredential.user_id == current_user.id).first()
    return _credential_status(row)


@router.put("/credentials", response_model=CredentialStatusResponse)
def update_credentials(
    request: KeywordToolCredentialsRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    """Store keyword tool credentials after checking them against the tool"""
    credentials = KeywordToolCredentials(cookie=request.cookie.strip(), xsrf_token=request.xsrf_token.strip())
    try:
        is_valid = KeywordToolClient(credentials).validate_credentials()
    except ExternalServiceError as e:
        raise to_http_exception(e)

    if not is_valid:
        raise HTTPException(status_code=400, detail="Keyword tool rejected these credentials")

    row = db.query(KeywordToolCredential).filter(KeywordToolCredential.user_id == current_user.id).first()
    if row is None:
        row = KeywordToolCredential(user_id=current_user.id)
        db.add(row)
    row.cookie = credentials.cookie
    row.xsrf_token = credentials.xsrf_token
    row.is_valid = True
    row.last_validated = datetime.now(timezone.utc)
    db.commit()
    db.refresh(row)

    logger.info(f"Keyword tool credentials updated for user {current_user.id}")
    return _credential_status(row)


@router.delete("/credentials")
def delete_credentials(
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    row = db.query(KeywordToolCredential).filter(KeywordToolCredential.user_id == current_user.id).first()
    if row is None:
        raise HTTPException(status_code=404, detail="No keyword tool credentials stored")
    db.delete(row)
    db.commit()
    return {"message": "Keyword tool credentials removed"}
