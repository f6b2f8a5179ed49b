"""
Keyword research against the WriterZen job API.

Both workflows follow the same shape: create a remote task, poll it with
BoundedPoller until the data shows up, then keep the top N rows.
The session credentials (cookie + XSRF token) are handed to the client when it
is built; rotating them is somebody else's job.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from draftwise.config import (
    KEYWORD_TOOL_BASE_URL,
    KEYWORD_TOOL_LOCATION_ID,
    KEYWORD_TOOL_LANGUAGE_ID,
    KEYWORD_TOOL_TIMEOUT_SECONDS,
    KEYWORD_RESULTS_LIMIT,
    KEYWORD_POLL_MAX_ATTEMPTS,
    KEYWORD_POLL_INTERVAL_SECONDS,
    KEYWORD_POLL_MAX_ELAPSED_SECONDS,
    INCLUDE_POLL_MAX_ATTEMPTS,
    INCLUDE_POLL_INTERVAL_SECONDS,
    INCLUDE_POLL_MAX_ELAPSED_SECONDS,
)
from draftwise.services.exceptions import (
    BadRequestError,
    ServiceUnavailableError,
    UnauthorizedError,
    error_for_status,
)
from draftwise.services.polling import (
    PollAttemptResult,
    PollLimits,
    PollOutcome,
    RemoteTask,
    run_bounded_task,
)

logger = logging.getLogger(__name__)

KEYWORD_EXPLORER_LIMITS = PollLimits(
    max_attempts=KEYWORD_POLL_MAX_ATTEMPTS,
    interval_seconds=KEYWORD_POLL_INTERVAL_SECONDS,
    max_elapsed_seconds=KEYWORD_POLL_MAX_ELAPSED_SECONDS,
    initial_delay_seconds=KEYWORD_POLL_INTERVAL_SECONDS,
)

KEYWORDS_TO_INCLUDE_LIMITS = PollLimits(
    max_attempts=INCLUDE_POLL_MAX_ATTEMPTS,
    interval_seconds=INCLUDE_POLL_INTERVAL_SECONDS,
    max_elapsed_seconds=INCLUDE_POLL_MAX_ELAPSED_SECONDS,
)


@dataclass(frozen=True)
class KeywordToolCredentials:
    cookie: str
    xsrf_token: str

    @property
    def is_complete(self) -> bool:
        return bool(self.cookie and self.xsrf_token)


@dataclass
class KeywordResearchResult:
    outcome: PollOutcome
    keywords: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0


class KeywordToolClient:
    """Transport and error classification for the keyword tool. No business logic."""

    def __init__(
        self,
        credentials: KeywordToolCredentials,
        base_url: str = KEYWORD_TOOL_BASE_URL,
        timeout: float = KEYWORD_TOOL_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, referer: Optional[str] = None) -> Dict[str, str]:
        return {
            "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36",
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/json",
            "Referer": referer or f"{self.base_url}/user/keyword-explorer/",
            "X-Requested-With": "XMLHttpRequest",
            "X-XSRF-TOKEN": self.credentials.xsrf_token,
            "Cookie": self.credentials.cookie,
        }

    def _post_json(self, url: str, payload: Dict) -> Dict:
        """POST that must succeed; every failure raises a classified error"""
        try:
            response = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ServiceUnavailableError(f"Keyword tool unreachable: {e}", service="keyword_tool") from e

        if response.status_code >= 400:
            raise error_for_status(response.status_code, f"Keyword tool returned {response.status_code}", "keyword_tool")
        try:
            body = response.json()
        except ValueError as e:
            raise ServiceUnavailableError("Keyword tool returned invalid JSON", service="keyword_tool") from e
        if not isinstance(body, dict):
            raise ServiceUnavailableError(
                f"Keyword tool returned a JSON {type(body).__name__} instead of an object", service="keyword_tool"
            )
        return body

    def _poll_json(self, url: str, referer: Optional[str] = None):
        """
        GET used while polling. Returns (body, None) or (None, attempt_result)
        when the attempt is already classified.
        """
        try:
            response = self.session.get(url, headers=self._headers(referer), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Keyword tool poll failed, will retry: {e}")
            return None, PollAttemptResult.not_yet()

        if response.status_code in (401, 403):
            return None, PollAttemptResult.fatal(
                UnauthorizedError(
                    "Keyword tool credentials are invalid or expired",
                    status_code=response.status_code,
                    service="keyword_tool",
                )
            )
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"Keyword tool poll returned {response.status_code}, will retry")
            return None, PollAttemptResult.not_yet()
        if response.status_code >= 400:
            return None, PollAttemptResult.fatal(
                BadRequestError(
                    f"Keyword tool rejected poll with {response.status_code}",
                    status_code=response.status_code,
                    service="keyword_tool",
                )
            )
        try:
            body = response.json()
        except ValueError:
            return None, PollAttemptResult.not_yet()
        if not isinstance(body, dict):
            logger.warning(f"Keyword tool poll returned a JSON {type(body).__name__}, will retry")
            return None, PollAttemptResult.not_yet()
        return body, None

    # -------------------------------------------------------------------------
    # Keyword explorer
    # -------------------------------------------------------------------------

    def submit_keyword_explorer(self, keyword: str) -> RemoteTask:
        payload = {
            "input": keyword,
            "type": "keyword",
            "location_id": KEYWORD_TOOL_LOCATION_ID,
            "language_id": KEYWORD_TOOL_LANGUAGE_ID,
        }
        body = self._post_json(f"{self.base_url}/api/services/keyword-explorer/v2/task", payload)
        data = body.get("data")
        task_id = data.get("id") if isinstance(data, dict) else None
        if not task_id:
            raise BadRequestError("Keyword explorer task creation failed", service="keyword_tool")
        return RemoteTask(task_id=str(task_id), context={"keyword": keyword})

    def check_keyword_explorer(self, task: RemoteTask) -> PollAttemptResult:
        url = f"{self.base_url}/api/services/keyword-explorer/v2/task/get-data?id={task.task_id}"
        body, classified = self._poll_json(url, referer=f"{self.base_url}/user/keyword-explorer/{task.task_id}")
        if classified is not None:
            return classified

        data = body.get("data")
        if not isinstance(data, dict):
            return PollAttemptResult.not_yet()
        ideas = data.get("ideas")
        if isinstance(ideas, list) and ideas:
            return PollAttemptResult.ready(ideas)
        return PollAttemptResult.not_yet()

    # -------------------------------------------------------------------------
    # Content creator (keywords to include)
    # -------------------------------------------------------------------------

    def submit_content_task(self, keyword: str) -> RemoteTask:
        """Create a project, then a content task inside it"""
        content_base = f"{self.base_url}/api/services/content-creator/v1"

        project = self._post_json(f"{content_base}/projects", {"name": keyword}).get("data")
        if not isinstance(project, dict) or not project.get("id"):
            raise BadRequestError("Project creation failed", service="keyword_tool")

        task_payload = {
            "keyword": keyword,
            "ai_config": {
                "content_format": None,
                "content_tone": None,
                "target_audience": None,
                "author_perspective": None,
            },
            "assignees": [],
            "automation": {"keyword": False, "title": False, "outline": False, "article": False},
            "deadline": None,
            "enable_nlp": True,
            "keyword_to_include": [],
            "language": {
                "name": "English",
                "language_code": "en",
                "criteria_id": KEYWORD_TOOL_LANGUAGE_ID,
            },
            "location": {
                "criteria_id": KEYWORD_TOOL_LOCATION_ID,
                "name": "United States",
            },
            "note": None,
            "owner": {"id": project.get("user_id")},
            "priority": "3",
            "project_id": project["id"],
        }
        task = self._post_json(f"{content_base}/tasks", task_payload).get("data")
        if not isinstance(task, dict) or not task.get("id"):
            raise BadRequestError("Task creation failed", service="keyword_tool")
        return RemoteTask(task_id=str(task["id"]), context={"keyword": keyword, "project_id": project["id"]})

    def check_keywords_to_include(self, task: RemoteTask) -> PollAttemptResult:
        url = f"{self.base_url}/api/services/content-creator/v1/data?id={task.task_id}&key=best_keyword"
        body, classified = self._poll_json(url)
        if classified is not None:
            return classified

        data = body.get("data")
        if isinstance(data, list) and data and isinstance(data[0], list) and data[0]:
            return PollAttemptResult.ready(data[0])
        return PollAttemptResult.not_yet()

    def validate_credentials(self) -> bool:
        """True if the tool accepts the current session"""
        try:
            response = self.session.get(
                f"{self.base_url}/api/user/profile", headers=self._headers(), timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise ServiceUnavailableError(f"Keyword tool unreachable: {e}", service="keyword_tool") from e

        if response.status_code in (401, 403):
            return False
        if response.status_code >= 400:
            raise error_for_status(response.status_code, "Keyword tool profile check failed", "keyword_tool")
        return True


class KeywordResearchService:
    """Keyword workflows built on the bounded poller"""

    def __init__(
        self,
        client: KeywordToolClient,
        explorer_limits: PollLimits = KEYWORD_EXPLORER_LIMITS,
        include_limits: PollLimits = KEYWORDS_TO_INCLUDE_LIMITS,
        result_limit: int = KEYWORD_RESULTS_LIMIT,
        sleep=None,
    ):
        self.client = client
        self.explorer_limits = explorer_limits
        self.include_limits = include_limits
        self.result_limit = result_limit
        self._poll_kwargs = {"sleep": sleep} if sleep is not None else {}

    def keyword_suggestions(self, keyword: str) -> KeywordResearchResult:
        """
        Top keyword ideas for a seed keyword.

        Raises:
            UnauthorizedError / BadRequestError / TransientServiceError from task creation
        """
        outcome = run_bounded_task(
            lambda: self.client.submit_keyword_explorer(keyword),
            self.client.check_keyword_explorer,
            self.explorer_limits,
            **self._poll_kwargs,
        )
        if not outcome.is_ready:
            return KeywordResearchResult(outcome=outcome)

        ideas = outcome.payload
        keywords = [
            {
                "keyword": item.get("keyword"),
                "search_volume": item.get("search_volume"),
                "competition": item.get("competition"),
                "id": item.get("id"),
            }
            for item in ideas[:self.result_limit]
        ]
        return KeywordResearchResult(outcome=outcome, keywords=keywords, total=len(ideas))

    def keywords_to_include(self, keyword: str) -> KeywordResearchResult:
        """Top NLP terms the article should use"""
        outcome = run_bounded_task(
            lambda: self.client.submit_content_task(keyword),
            self.client.check_keywords_to_include,
            self.include_limits,
            **self._poll_kwargs,
        )
        if not outcome.is_ready:
            return KeywordResearchResult(outcome=outcome)

        rows = outcome.payload
        keywords = [
            {
                "text": item.get("text") or "",
                "search_volume": item.get("searchVolume") or 0,
                "repeat": item.get("repeat") or 0,
                "density": item.get("density") or 0,
                "similarity": item.get("similarity") or 0,
                "frequency": item.get("frequency") or 0,
            }
            for item in rows[:self.result_limit]
        ]
        return KeywordResearchResult(outcome=outcome, keywords=keywords, total=len(keywords))
