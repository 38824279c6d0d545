"""
FastAPI Application for the SEO Audit Service

Backend handlers for the SEO dashboard:
- SEO health audit of a single page
- Uptime monitor check
- Site health check (robots.txt, sitemap, TLS)
- GEO content generation

Security features:
- Optional API key authentication
- Rate limiting
- Input validation
- CORS configuration
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request, Security, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, field_validator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from content_generator import DEFAULT_LOCATION, GeneratedArticle, create_generator
from seo_audit_engine import AuditReport, run_audit
from site_monitor import MonitorResult, SiteHealthReport, check_monitor, check_site_health

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# Rate limiter configuration
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "10"))
MONITOR_RATE_LIMIT_PER_MINUTE = int(os.getenv("MONITOR_RATE_LIMIT_PER_MINUTE", "60"))
limiter = Limiter(key_func=get_remote_address)

# API Key Security
API_KEY_NAME = "X-API-Key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)

API_KEY = os.getenv("API_KEY", "")
if not API_KEY:
    logger.warning(
        "API_KEY not set in environment variables. API will be accessible without authentication."
    )


def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> bool:
    """
    Verify API key from request header.

    Raises:
        HTTPException: If API key is invalid or missing
    """
    if not API_KEY:
        # If no API key is configured, allow all requests
        return True

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key is missing. Please provide X-API-Key header.",
        )

    if api_key != API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
        )

    return True


# Request/Response Models
class TargetRequest(BaseModel):
    """Request body naming a page or site to check."""

    url: Optional[str] = None
    domain: Optional[str] = None

    @field_validator("url", "domain")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def target(self) -> Optional[str]:
        return self.url or self.domain


class GenerateRequest(BaseModel):
    """Request body for GEO content generation."""

    keyword: Optional[str] = None
    location: Optional[str] = None

    @field_validator("keyword", "location")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class HealthResponse(BaseModel):
    """Liveness response model."""

    status: str
    message: str
    version: str = VERSION


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing endpoint."""

    ok: bool = False
    error: str
    detail: Optional[str] = None


def error_response(status_code: int, error: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def require_target(*values: Optional[str], message: str) -> str:
    """First non-blank value, stripped; 400 with ``message`` when there is none."""
    for value in values:
        if value and value.strip():
            return value.strip()
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


# Lifespan context manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for the FastAPI app."""
    logger.info("Starting SEO Audit API...")
    yield
    logger.info("Shutting down SEO Audit API...")


# Create FastAPI app
app = FastAPI(
    title="SEO Audit API",
    description="SEO health audits, monitor checks and GEO content generation",
    version=VERSION,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg") if errors else None
    logger.info(f"Rejected malformed request to {request.url.path}: {detail}")
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", detail)


# ============================================================================
# Handlers
# ============================================================================


async def _audit(target: str) -> AuditReport:
    logger.info(f"Received SEO audit request: url='{target}'")
    try:
        return await run_audit(target)
    except Exception as e:
        logger.error(f"Error performing SEO audit: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )


async def _health(target: str) -> SiteHealthReport:
    logger.info(f"Received site health request: url='{target}'")
    try:
        return await check_site_health(target)
    except Exception as e:
        logger.error(f"Error performing site health check: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )


async def _generate(keyword: str, location: Optional[str]) -> GeneratedArticle:
    logger.info(f"Received content generation request: keyword='{keyword}'")
    generator = create_generator()
    return await generator.generate(keyword, location or DEFAULT_LOCATION)


# Routes
@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="Health check endpoint",
)
async def health_check():
    """Health check endpoint to verify API is running."""
    return HealthResponse(status="healthy", message="SEO Audit API is running")


@app.get(
    "/seo_audit",
    response_model=AuditReport,
    tags=["SEO Audit"],
    summary="Audit a page given as a query parameter",
    dependencies=[Depends(verify_api_key)],
)
@limiter.limit(f"{RATE_LIMIT_PER_MINUTE}/minute")
async def seo_audit_get(
    request: Request,
    domain: Optional[str] = None,
    url: Optional[str] = None,
):
    """
    Audit the page named by ``domain`` or ``url``.

    A page that cannot be fetched still produces a report, with
    ``fetched.ok`` false and the issues of an empty document.
    """
    target = require_target(domain, url, message="Missing domain")
    return await _audit(target)


@app.post(
    "/seo_audit",
    response_model=AuditReport,
    tags=["SEO Audit"],
    summary="Audit a page given in the request body",
    dependencies=[Depends(verify_api_key)],
)
@limiter.limit(f"{RATE_LIMIT_PER_MINUTE}/minute")
async def seo_audit_post(request_data: TargetRequest, request: Request):
    target = require_target(request_data.target, message="Missing url")
    return await _audit(target)


@app.get(
    "/monitor_check",
    response_model=MonitorResult,
    tags=["Monitoring"],
    summary="HEAD a site and report reachability",
    dependencies=[Depends(verify_api_key)],
)
@limiter.limit(f"{MONITOR_RATE_LIMIT_PER_MINUTE}/minute")
async def monitor_check_get(
    request: Request,
    domain: Optional[str] = None,
    url: Optional[str] = None,
):
    target = require_target(domain, url, message="Missing domain")
    return await check_monitor(target)


@app.post(
    "/monitor_check",
    response_model=MonitorResult,
    tags=["Monitoring"],
    summary="HEAD a site and report reachability",
    dependencies=[Depends(verify_api_key)],
)
@limiter.limit(f"{MONITOR_RATE_LIMIT_PER_MINUTE}/minute")
async def monitor_check_post(request_data: TargetRequest, request: Request):
    target = require_target(request_data.target, message="Missing url")
    return await check_monitor(target)


@app.get(
    "/seo_health",
    response_model=SiteHealthReport,
    tags=["Monitoring"],
    summary="Check robots.txt, sitemap and TLS for a site",
    dependencies=[Depends(verify_api_key)],
)
@limiter.limit(f"{RATE_LIMIT_PER_MINUTE}/minute")
async def seo_health_get(
    request: Request,
    domain: Optional[str] = None,
    url: Optional[str] = None,
):
    target = require_target(domain, url, message="Missing domain")
    return await _health(target)


@app.post(
    "/seo_health",
    response_model=SiteHealthReport,
    tags=["Monitoring"],
    summary="Check robots.txt, sitemap and TLS for a site",
    dependencies=[Depends(verify_api_key)],
)
@limiter.limit(f"{RATE_LIMIT_PER_MINUTE}/minute")
async def seo_health_post(request_data: TargetRequest, request: Request):
    target = require_target(request_data.target, message="Missing url")
    return await _health(target)


@app.get(
    "/geo_generate",
    response_model=GeneratedArticle,
    tags=["Content"],
    summary="Generate a local SEO article",
    dependencies=[Depends(verify_api_key)],
)
@limiter.limit(f"{RATE_LIMIT_PER_MINUTE}/minute")
async def geo_generate_get(
    request: Request,
    keyword: Optional[str] = None,
    location: Optional[str] = None,
):
    """
    Generate an article for ``keyword`` in ``location``.

    Falls back to a template article when no model is configured or the
    model call fails.
    """
    keyword = require_target(keyword, message="Missing keyword")
    return await _generate(keyword, location)


@app.post(
    "/geo_generate",
    response_model=GeneratedArticle,
    tags=["Content"],
    summary="Generate a local SEO article",
    dependencies=[Depends(verify_api_key)],
)
@limiter.limit(f"{RATE_LIMIT_PER_MINUTE}/minute")
async def geo_generate_post(request_data: GenerateRequest, request: Request):
    keyword = require_target(request_data.keyword, message="Missing keyword")
    return await _generate(keyword, request_data.location)


@app.get(
    "/",
    tags=["Root"],
    summary="API root endpoint",
)
async def root():
    """API information and available endpoints."""
    return {
        "name": "SEO Audit API",
        "version": VERSION,
        "endpoints": {
            "health": "/health",
            "seo_audit": "/seo_audit",
            "monitor_check": "/monitor_check",
            "seo_health": "/seo_health",
            "geo_generate": "/geo_generate",
            "docs": "/docs",
        },
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 9000))
    host = os.getenv("HOST", "0.0.0.0")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.getenv("DEBUG", "False").lower() == "true",
        log_level="info",
    )
