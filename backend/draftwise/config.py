"""
Configuration for Draftwise
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Base directory
BASE_DIR = Path(__file__).parent.parent


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (ValueError, TypeError):
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (ValueError, TypeError):
        return default


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# API Keys - Must be set via environment variables
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# LLM Provider preference: "claude" or "openai" (defaults to claude if available)
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "claude")
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
LLM_MAX_TOKENS = _int_env("LLM_MAX_TOKENS", 1000)
LLM_TIMEOUT_SECONDS = _float_env("LLM_TIMEOUT_SECONDS", 60.0)

# Document fetching
FETCH_TIMEOUT_SECONDS = _float_env("FETCH_TIMEOUT_SECONDS", 15.0)
FETCH_CACHE_TTL_SECONDS = _int_env("FETCH_CACHE_TTL_SECONDS", 1800)

# Search results (SerpApi) used to discover competitor pages for a query
SERPAPI_KEY = os.getenv("SERPAPI_KEY", "")
SERP_API_URL = os.getenv("SERP_API_URL", "https://serpapi.com/search")
SERP_RESULTS_COUNT = _int_env("SERP_RESULTS_COUNT", 10)
SERP_TIMEOUT_SECONDS = _float_env("SERP_TIMEOUT_SECONDS", 30.0)
# Domains ranked ahead of general results, matched as substrings of the result domain
competitor_domains_str = os.getenv(
    "COMPETITOR_DOMAINS",
    "growmeorganic,uplead,saleshandy,zendesk,salesforce,wiza,zoominfo,snov,woodpecker",
)
COMPETITOR_DOMAINS = [d.strip().lower() for d in competitor_domains_str.split(",") if d.strip()]

# Heading filter for the scrape fallback. These bounds are heuristics, tune freely.
OUTLINE_MIN_HEADING_LENGTH = _int_env("OUTLINE_MIN_HEADING_LENGTH", 5)
OUTLINE_MAX_HEADING_LENGTH = _int_env("OUTLINE_MAX_HEADING_LENGTH", 120)
OUTLINE_MAX_HEADINGS = _int_env("OUTLINE_MAX_HEADINGS", 40)

# Keyword research job API (WriterZen)
KEYWORD_TOOL_BASE_URL = os.getenv("KEYWORD_TOOL_BASE_URL", "https://app.writerzen.net")
KEYWORD_TOOL_LOCATION_ID = _int_env("KEYWORD_TOOL_LOCATION_ID", 2840)
KEYWORD_TOOL_LANGUAGE_ID = _int_env("KEYWORD_TOOL_LANGUAGE_ID", 1000)
KEYWORD_TOOL_TIMEOUT_SECONDS = _float_env("KEYWORD_TOOL_TIMEOUT_SECONDS", 20.0)
KEYWORD_RESULTS_LIMIT = _int_env("KEYWORD_RESULTS_LIMIT", 10)

# Keyword explorer: 36 attempts * 5s = 3 minutes
KEYWORD_POLL_MAX_ATTEMPTS = _int_env("KEYWORD_POLL_MAX_ATTEMPTS", 36)
KEYWORD_POLL_INTERVAL_SECONDS = _float_env("KEYWORD_POLL_INTERVAL_SECONDS", 5.0)
KEYWORD_POLL_MAX_ELAPSED_SECONDS = _float_env("KEYWORD_POLL_MAX_ELAPSED_SECONDS", 180.0)

# Keywords to include: 15 attempts * 3s
INCLUDE_POLL_MAX_ATTEMPTS = _int_env("INCLUDE_POLL_MAX_ATTEMPTS", 15)
INCLUDE_POLL_INTERVAL_SECONDS = _float_env("INCLUDE_POLL_INTERVAL_SECONDS", 3.0)
INCLUDE_POLL_MAX_ELAPSED_SECONDS = _float_env("INCLUDE_POLL_MAX_ELAPSED_SECONDS", 60.0)

# Credits
INITIAL_FREE_CREDITS = _int_env("INITIAL_FREE_CREDITS", 2)
OPERATION_COSTS = {
    "toc_extraction": _int_env("COST_TOC_EXTRACTION", 1),
    "keyword_research": _int_env("COST_KEYWORD_RESEARCH", 1),
    "keywords_to_include": _int_env("COST_KEYWORDS_TO_INCLUDE", 1),
    "description_generation": _int_env("COST_DESCRIPTION_GENERATION", 1),
}

# CORS
cors_origins_str = os.getenv("ALLOWED_ORIGINS", "*")
if cors_origins_str.strip() == "*":
    ALLOWED_ORIGINS = ["*"]
else:
    ALLOWED_ORIGINS = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]
    if not ALLOWED_ORIGINS:
        ALLOWED_ORIGINS = ["*"]

# Authentication
SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-change-in-production-12345")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = _int_env("ACCESS_TOKEN_EXPIRE_HOURS", 24)
