"""
RepoLens API

FastAPI application serving repository analyses to the RepoLens dashboard.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import get_settings
from .database import init_db
from .dependencies import limiter
from .errors import RepoLensError
from .logging_config import setup_logging
from .routers import analysis, architecture, contributors, credentials, llm, reports, visualizations
from .services.cache import RedisCacheService
from .services.cache_provider import close_cache_service, get_cache_service

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("RepoLens API started")
    yield
    await close_cache_service()
    logger.info("RepoLens API stopped")


app = FastAPI(
    title="RepoLens API",
    description="GitHub repository analysis and visualization backend",
    version=__version__,
    lifespan=lifespan,
)

app.state.limiter = limiter


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests. Please try again later."},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(RepoLensError)
async def repolens_error_handler(request: Request, exc: RepoLensError):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Cache-Control"],
)

app.include_router(visualizations.router)
app.include_router(analysis.router)
app.include_router(contributors.router)
app.include_router(architecture.router)
app.include_router(credentials.router)
app.include_router(llm.router)
app.include_router(reports.router)


@app.get("/")
def read_root():
    return {"name": "RepoLens API", "version": __version__, "status": "running"}


@app.get("/health")
async def health(cache: RedisCacheService = Depends(get_cache_service)):
    return {
        "status": "ok",
        "redis": await cache.ping(),
        "cache": cache.stats(),
    }
