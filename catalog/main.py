from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from dotenv import load_dotenv
import os
import logging

from catalog.database import Base, engine
from catalog.routes import movies, ratings, rankings
from catalog.services.box_office_client import BoxOfficeClient
from catalog.services.ranking_service import build_ranking_index
from catalog.utils.cache import build_cache
from catalog.utils.errors import CatalogError, ErrorKind
from catalog.utils.redis_client import connect_redis

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# HTTP status for each error kind
STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID_ARGUMENT: 422,
    ErrorKind.UNAVAILABLE: 503,
    ErrorKind.DEGRADED_DEPENDENCY: 503,
}


# ============================================
# Application Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events

    Startup:
    - Connect to Redis (optional, falls back to in-process or no-op backends)
    - Build the cache, ranking index and box office client
    - Create tables when AUTO_CREATE_TABLES=true

    Shutdown:
    - Close Redis and the database pool
    """
    logger.info("=" * 60)
    logger.info("Movie Catalog API Starting...")
    logger.info(f"   Environment: {os.getenv('ENVIRONMENT', 'development')}")

    if os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true":
        Base.metadata.create_all(bind=engine)
        logger.info("   Database tables ensured")

    redis_client = connect_redis()
    use_memory = os.getenv("CACHE_BACKEND", "").lower() == "memory"
    app.state.cache = build_cache(redis_client)
    app.state.rankings = build_ranking_index(redis_client, use_memory=use_memory)
    app.state.box_office = BoxOfficeClient.from_env()

    logger.info(f"   Cache backend: {app.state.cache.name}")
    logger.info(f"   Ranking backend: {app.state.rankings.name}")
    logger.info("=" * 60)

    yield

    logger.info("Movie Catalog API Shutting Down...")
    if redis_client is not None:
        try:
            redis_client.close()
        except Exception as e:
            logger.error(f"Error closing Redis: {str(e)}")
    engine.dispose()


app = FastAPI(
    title="Movie Catalog API",
    description="Movie catalog with ratings, rankings and box office enrichment",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================
# Exception Handlers
# ============================================

@app.exception_handler(CatalogError)
async def catalog_exception_handler(request: Request, exc: CatalogError):
    """Map structured catalog errors to HTTP responses by kind"""
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{exc.kind.value} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.kind.value}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"

    return response


# ============================================
# Routes
# ============================================

@app.get("/", tags=["Health"])
async def root():
    """Basic health check"""
    return {
        "message": "Movie Catalog API",
        "version": API_VERSION,
        "status": "healthy",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Detailed health check for monitoring"""
    return {
        "status": "healthy",
        "api_version": API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "backends": {
            "cache": request.app.state.cache.name,
            "rankings": request.app.state.rankings.name,
        }
    }


app.include_router(movies.router)
app.include_router(ratings.router)
app.include_router(rankings.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        log_level="info"
    )
