"""
FastAPI application entry point for RadioDx batch diagnostics.
"""


from prometheus_fastapi_instrumentator import Instrumentator
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

# Rate limiting imports
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from radiodx.core.config import settings
from radiodx.core.rate_limit import limiter
from radiodx.diagnostics.router import router as diagnostics_router
from radiodx.reports.router import router as reports_router
from radiodx.uploads.router import router as uploads_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    # Startup
    logger.info(f"🚀 Starting {settings.APP_NAME} {settings.VERSION}...")
    try:
        settings.validate()
        logger.info(
            f"✅ Inference endpoint {settings.INFERENCE_API_URL} "
            f"(model {settings.INFERENCE_MODEL}, batch size {settings.BATCH_SIZE})"
        )
    except ValueError as e:
        logger.error(f"❌ Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info(f"🔄 Shutting down {settings.APP_NAME}...")

# Initialize FastAPI
app = FastAPI(
    title=settings.APP_NAME,
    description="Batch medical image analysis through a vision language model with consolidated diagnostic reports",
    version=settings.VERSION,
    lifespan=lifespan
)

# Rate limiter state and handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Prometheus instrumentation
Instrumentator().instrument(app).expose(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    uploads_router,
    prefix="/api/v1",
    tags=["uploads"]
)

app.include_router(
    diagnostics_router,
    prefix="/api/v1",
    tags=["diagnostics"]
)

app.include_router(
    reports_router,
    prefix="/api/v1",
    tags=["reports"]
)

# Root endpoint
@app.get("/")
def read_root():
    """API root endpoint."""
    return {
        "message": f"🏥 {settings.APP_NAME} API",
        "version": settings.VERSION,
        "status": "running",
        "description": "Batch medical image analysis with consolidated diagnostic reports",
        "endpoints": {
            "upload": "/api/v1/upload - Upload medical images",
            "upload_limits": "/api/v1/upload/limits - Upload limits",
            "diagnose": "/api/v1/diagnose - Process images in batches and compile a report",
            "status": "/api/v1/diagnose/{session_id}/status - Run progress",
            "prompt": "/api/v1/diagnose/prompt - Default instruction prompt",
            "reports": "/api/v1/reports - Save, list and export reports",
            "health": "/api/v1/health - Diagnostic service health",
            "docs": "/docs - Interactive API documentation"
        }
    }

# Global health check
@app.get("/health")
def global_health_check():
    """Overall application health check."""
    return {
        "status": "healthy",
        "application": settings.APP_NAME,
        "version": settings.VERSION,
        "rate_limiting": "enabled",
        "services": {
            "diagnostics": "/api/v1/health",
            "metrics": "/metrics",
        }
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "radiodx.main:app",
        host="0.0.0.0",
        port=7860,
        reload=settings.DEBUG
    )
