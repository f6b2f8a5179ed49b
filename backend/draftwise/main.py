"""
Main FastAPI application for Draftwise
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from draftwise.api import auth, blogs, credits, enrichment, scraper
from draftwise.database import init_db
from draftwise.config import ALLOWED_ORIGINS, LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Draftwise API",
    description="Blog drafting assistant: outline extraction, keyword research and credit metering",
    version="1.0.0"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info("Draftwise API started - database initialized")


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(blogs.router, prefix="/api/blogs", tags=["blogs"])
app.include_router(enrichment.router, prefix="/api/enrichment", tags=["enrichment"])
app.include_router(credits.router, prefix="/api/credits", tags=["credits"])
app.include_router(scraper.router, prefix="/api/scraper", tags=["scraper"])


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "Draftwise API"}


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "Draftwise API",
        "version": "1.0.0",
        "docs": "/docs"
    }
