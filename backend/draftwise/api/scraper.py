"""
Scraper API endpoint: search a query and list competitor pages first.
The returned URLs are what the outline endpoint expects as candidates.
"""
import logging

from fastapi import APIRouter, HTTPException, Depends

from draftwise.api.auth import get_current_user_from_token
from draftwise.api.enrichment import to_http_exception
from draftwise.models.database import User
from draftwise.schemas.requests import ScrapeRequest
from draftwise.schemas.responses import ScrapeResponse, SerpResultResponse
from draftwise.services.exceptions import ExternalServiceError
from draftwise.services.serp_service import SERPService, get_serp_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/scrape", response_model=ScrapeResponse)
def scrape(
    request: ScrapeRequest,
    current_user: User = Depends(get_current_user_from_token),
    serp_service: SERPService = Depends(get_serp_service),
):
    """Organic search results for a query, ranked with competitor domains first. Not billed."""
    query = request.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")

    try:
        results = serp_service.find_candidates(query)
    except ExternalServiceError as e:
        logger.error(f"Search failed for user {current_user.id}: {e}")
        raise to_http_exception(e)

    if not results:
        raise HTTPException(status_code=404, detail="No search results found")

    return ScrapeResponse(
        message="Scraping completed successfully",
        results=[
            SerpResultResponse(
                title=r.title,
                url=r.url,
                description=r.description,
                origin_site=r.origin_site,
                position=r.position,
                source=r.source,
            )
            for r in results
        ],
        query=query,
        total_results=len(results),
    )
