"""
Enrichment orchestration: one method per billable operation.

Every operation runs the same sequence:
    reserve credits -> do the work -> store the product -> debit

Nothing is debited unless a usable product exists. A debit that fails after the
product is stored is logged for manual reconciliation and the product is still
returned.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from draftwise.config import OPERATION_COSTS
from draftwise.models.database import Blog, CreditOperation, KeywordToolCredential
from draftwise.services.credit_service import CreditService
from draftwise.services.exceptions import (
    InsufficientCreditsError,
    OperationTimedOutError,
    ResourceNotFoundError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from draftwise.services.keyword_service import (
    KeywordResearchResult,
    KeywordResearchService,
    KeywordToolClient,
    KeywordToolCredentials,
)
from draftwise.services.llm_service import LLMService, get_llm_service
from draftwise.services.outline_service import (
    OutlineResult,
    OutlineService,
    SourceStrategy,
    candidates_from_urls,
    get_outline_service,
)
from draftwise.services.polling import Outcome

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentResult:
    operation: CreditOperation
    product: Any
    billed: bool
    credits_remaining: Optional[int] = None
    blog_id: Optional[int] = None


def default_keyword_service_factory(credentials: KeywordToolCredentials) -> KeywordResearchService:
    return KeywordResearchService(KeywordToolClient(credentials))


class EnrichmentService:
    """Sequences the credit ledger around outline and keyword workflows"""

    def __init__(
        self,
        db: Session,
        credit_service: Optional[CreditService] = None,
        outline_service: Optional[OutlineService] = None,
        llm: Optional[LLMService] = None,
        keyword_service_factory: Callable[[KeywordToolCredentials], KeywordResearchService] = default_keyword_service_factory,
        costs: Optional[Dict[str, int]] = None,
    ):
        self.db = db
        self.credits = credit_service or CreditService(db)
        self._outline_service = outline_service
        self._llm = llm
        self.keyword_service_factory = keyword_service_factory
        self.costs = dict(OPERATION_COSTS if costs is None else costs)

    @property
    def outline_service(self) -> OutlineService:
        if self._outline_service is None:
            self._outline_service = get_outline_service()
        return self._outline_service

    @property
    def llm(self) -> LLMService:
        if self._llm is None:
            self._llm = get_llm_service()
        return self._llm

    # =========================================================================
    # Ledger bracketing
    # =========================================================================

    def cost_of(self, operation: CreditOperation) -> int:
        return self.costs.get(operation.value, 1)

    def _reserve(self, user_id: int, operation: CreditOperation) -> int:
        cost = self.cost_of(operation)
        reservation = self.credits.reserve(user_id, cost)
        if not reservation.approved:
            logger.info(
                f"Account {user_id} has {reservation.available} credits, "
                f"{operation.value} needs {reservation.required}"
            )
            raise InsufficientCreditsError(reservation.available, reservation.required, operation.value)
        return cost

    def _commit(self, user_id: int, operation: CreditOperation, cost: int, blog_id: Optional[int]) -> Optional[int]:
        """Debit after delivery. Failures are reconciliation events, not errors."""
        try:
            return self.credits.debit(user_id, operation, cost, blog_id)
        except Exception as e:
            logger.error(
                f"RECONCILIATION REQUIRED: debit of {cost} credits for {operation.value} failed after delivery "
                f"(account={user_id}, blog={blog_id}): {e}",
                extra={
                    "event": "credit_reconciliation_required",
                    "account_id": user_id,
                    "operation": operation.value,
                    "linked_resource_id": blog_id,
                    "amount": cost,
                    "error": str(e),
                },
            )
            return None

    def _audit_miss(self, user_id: int, operation: CreditOperation, blog_id: Optional[int], details: str):
        try:
            self.credits.record_failed(user_id, operation, blog_id, details)
        except Exception as e:
            logger.warning(f"Could not record failed {operation.value} for account {user_id}: {e}")

    def _load_blog(self, user_id: int, blog_id: Optional[int]) -> Optional[Blog]:
        if blog_id is None:
            return None
        blog = self.db.query(Blog).filter(Blog.id == blog_id, Blog.created_by == user_id).first()
        if blog is None:
            raise ResourceNotFoundError("Blog", blog_id)
        return blog

    def _store(
        self,
        user_id: int,
        blog: Optional[Blog],
        topic_keyword: str,
        urls: Optional[List[str]] = None,
        **fields,
    ) -> Blog:
        """
        Persist a product before it is billed. Without a target blog a new
        draft is created to hold it.
        """
        if blog is None:
            blog = Blog(created_by=user_id, topic_keyword=topic_keyword, urls=list(urls or []), status="draft")
            self.db.add(blog)
        for name, value in fields.items():
            setattr(blog, name, value)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(blog)
        return blog

    # =========================================================================
    # Operations
    # =========================================================================

    def extract_outline(
        self,
        user_id: int,
        urls: List[str],
        blog_id: Optional[int] = None,
        topic_keyword: Optional[str] = None,
    ) -> EnrichmentResult:
        """
        Resolve a table of contents from competitor URLs.
        A NOT_FOUND outline is returned but not billed.
        """
        operation = CreditOperation.TOC_EXTRACTION
        blog = self._load_blog(user_id, blog_id)
        cost = self._reserve(user_id, operation)

        logger.info(f"Extracting TOC for account {user_id} from {len(urls)} URLs")
        result: OutlineResult = self.outline_service.resolve(candidates_from_urls(urls))

        if result.source_strategy == SourceStrategy.NOT_FOUND:
            self._audit_miss(user_id, operation, blog_id, "; ".join(result.misses) or "no outline found")
            return EnrichmentResult(operation, result, billed=False, credits_remaining=self.credits.get_balance(user_id))

        blog = self._store(
            user_id,
            blog,
            topic_keyword or (result.source_document or urls[0]),
            urls,
            table_of_content=result.text,
            toc_source_strategy=result.source_strategy.value,
            toc_source_url=result.source_document,
        )
        remaining = self._commit(user_id, operation, cost, blog.id)
        return EnrichmentResult(operation, result, billed=remaining is not None, credits_remaining=remaining, blog_id=blog.id)

    def keyword_suggestions(self, user_id: int, keyword: str, blog_id: Optional[int] = None) -> EnrichmentResult:
        operation = CreditOperation.KEYWORD_RESEARCH
        blog = self._load_blog(user_id, blog_id)
        cost = self._reserve(user_id, operation)

        research = self._keyword_service_for(user_id)
        logger.info(f"Getting keyword suggestions for: {keyword}")
        result = self._run_keyword_workflow(user_id, operation, blog_id, lambda: research.keyword_suggestions(keyword))

        blog = self._store(user_id, blog, keyword, keyword_suggestions=result.keywords)
        remaining = self._commit(user_id, operation, cost, blog.id)
        return EnrichmentResult(operation, result, billed=remaining is not None, credits_remaining=remaining, blog_id=blog.id)

    def keywords_to_include(self, user_id: int, keyword: str, blog_id: Optional[int] = None) -> EnrichmentResult:
        operation = CreditOperation.KEYWORDS_TO_INCLUDE
        blog = self._load_blog(user_id, blog_id)
        cost = self._reserve(user_id, operation)

        research = self._keyword_service_for(user_id)
        logger.info(f"Getting keywords to include for: {keyword}")
        result = self._run_keyword_workflow(user_id, operation, blog_id, lambda: research.keywords_to_include(keyword))

        blog = self._store(user_id, blog, keyword, keywords_to_include=result.keywords)
        remaining = self._commit(user_id, operation, cost, blog.id)
        return EnrichmentResult(operation, result, billed=remaining is not None, credits_remaining=remaining, blog_id=blog.id)

    def generate_description(
        self,
        user_id: int,
        topic_keyword: str,
        table_of_content: str,
        blog_id: Optional[int] = None,
    ) -> EnrichmentResult:
        """Two or three line summary of an outline"""
        operation = CreditOperation.DESCRIPTION_GENERATION
        blog = self._load_blog(user_id, blog_id)
        cost = self._reserve(user_id, operation)

        prompt = f"""I want to get this outline written by AI on given topic keyword, so give me a 2-3 line explanation of this outline.

Topic Keyword: {topic_keyword}

Outline:
{table_of_content}

Please provide a concise 2-3 line explanation of this outline. Reply with the explanation only."""

        description = self.llm.complete(prompt, max_tokens=500).strip()
        if not description:
            self._audit_miss(user_id, operation, blog_id, "empty description")
            raise ServiceUnavailableError("The description service returned nothing", service="llm")

        fields = {"background_description": description}
        if blog is None:
            fields["table_of_content"] = table_of_content
        blog = self._store(user_id, blog, topic_keyword, **fields)
        remaining = self._commit(user_id, operation, cost, blog.id)
        return EnrichmentResult(operation, description, billed=remaining is not None, credits_remaining=remaining, blog_id=blog.id)

    # =========================================================================
    # Keyword tool plumbing
    # =========================================================================

    def _keyword_service_for(self, user_id: int) -> KeywordResearchService:
        row = self.db.query(KeywordToolCredential).filter(KeywordToolCredential.user_id == user_id).first()
        credentials = KeywordToolCredentials(cookie=(row.cookie if row else "") or "", xsrf_token=(row.xsrf_token if row else "") or "")
        if not credentials.is_complete:
            raise UnauthorizedError("Keyword tool credentials required", service="keyword_tool")
        return self.keyword_service_factory(credentials)

    def _run_keyword_workflow(
        self,
        user_id: int,
        operation: CreditOperation,
        blog_id: Optional[int],
        workflow: Callable[[], KeywordResearchResult],
    ) -> KeywordResearchResult:
        try:
            result = workflow()
        except UnauthorizedError:
            self._invalidate_credentials(user_id)
            raise

        outcome = result.outcome
        if outcome.outcome == Outcome.FAILED:
            if isinstance(outcome.cause, UnauthorizedError):
                self._invalidate_credentials(user_id)
            self._audit_miss(user_id, operation, blog_id, f"remote task failed: {outcome.cause}")
            raise outcome.cause

        if outcome.outcome == Outcome.TIMED_OUT or not result.keywords:
            self._audit_miss(
                user_id, operation, blog_id,
                f"no keyword data after {outcome.attempts_used} attempts ({outcome.elapsed_ms}ms)",
            )
            raise OperationTimedOutError(
                "Timeout: no keyword data available",
                attempts_used=outcome.attempts_used,
                elapsed_ms=outcome.elapsed_ms,
            )
        return result

    def _invalidate_credentials(self, user_id: int):
        row = self.db.query(KeywordToolCredential).filter(KeywordToolCredential.user_id == user_id).first()
        if row is None:
            return
        row.is_valid = False
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Could not mark keyword tool credentials invalid for account {user_id}: {e}")
