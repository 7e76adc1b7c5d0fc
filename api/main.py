"""
SetupDiff - FastAPI Application

Main entry point for the API server.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import settings


# =============================================================================
# REQUEST SIZE MIDDLEWARE
# =============================================================================
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject uploads larger than MAX_REQUEST_SIZE."""

    async def dispatch(self, request: Request, call_next):
        # Check Content-Length header if present
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > settings.MAX_REQUEST_SIZE:
                return Response(
                    content='{"detail": "Request body too large"}',
                    status_code=413,
                    media_type="application/json"
                )
        return await call_next(request)


from services.watcher import IndexService

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global service instance
index_service: Optional[IndexService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    global index_service

    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Start index service if configured
    if settings.SETUPS_DIRECTORY:
        index_service = IndexService()
        try:
            index_service.start(settings.SETUPS_DIRECTORY, watch=settings.WATCH_ENABLED)
        except FileNotFoundError:
            logger.warning(f"Setups directory not found: {settings.SETUPS_DIRECTORY}")

    yield

    # Shutdown
    logger.info("Shutting down...")

    if index_service:
        index_service.stop()

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Side-by-side comparison of vehicle setup exports",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

# 1. Request Size Limit
app.add_middleware(RequestSizeLimitMiddleware)

# 2. CORS middleware - configurable via CORS_ORIGINS env var
cors_origins = settings.CORS_ORIGINS.split(",") if settings.CORS_ORIGINS != "*" else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_origins != ["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Requested-With"],
)

# Import and include routers
from api.routes import comparison, setups

app.include_router(setups.router, prefix="/api/setups", tags=["Setups"])
app.include_router(comparison.router, prefix="/api/compare", tags=["Comparison"])


@app.get("/", response_class=HTMLResponse)
async def root():
    """Root endpoint - return simple status page."""
    docs_link = '<p>See <a href="/docs">/docs</a> for full API documentation.</p>' if settings.DEBUG else ''
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <title>{settings.APP_NAME}</title>
        <style>
            body {{ font-family: system-ui, sans-serif; max-width: 800px; margin: 50px auto; padding: 20px; }}
            .version {{ color: #666; }}
            .endpoints {{ background: #f5f5f5; padding: 20px; border-radius: 8px; margin-top: 20px; }}
            code {{ background: #e0e0e0; padding: 2px 6px; border-radius: 4px; }}
        </style>
    </head>
    <body>
        <h1>{settings.APP_NAME}</h1>
        <p class="version">Version {settings.APP_VERSION}</p>

        <div class="endpoints">
            <h3>API</h3>
            <p><code>GET /api/setups?prefix=car/track</code> lists indexed setups.</p>
            <p><code>POST /api/compare</code> compares setups by location.</p>
            {docs_link}
        </div>
    </body>
    </html>
    """


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    watching = index_service.is_watching() if index_service and settings.WATCH_ENABLED else None
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "indexed_setups": len(index_service.index) if index_service else 0,
        "watching": watching,
    }


# Make services accessible to routes
def get_index_service() -> Optional[IndexService]:
    return index_service
