"""
TeleFlow Campaign API - Main Application

Audience estimation and post-purchase workflow engine for telecom marketing
campaigns.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from teleflow.api.v2.router import api_router
from teleflow.config import settings
from teleflow.database import init_db
from teleflow.exceptions import TeleflowException, create_exception_handlers
from teleflow.services.campaigns import runtime

# Import all models to register them with SQLAlchemy metadata before init_db()
from teleflow.models import Profile, UserTag, UserTagAssignment, BillingTransaction, TelecomUsage, Campaign, CampaignLog  # noqa: F401

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting TeleFlow Campaign API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # SECURITY: Don't log full exception details which may contain credentials
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - some features may not work")

    runtime.workflow_engine.start()
    yield

    logger.info("Shutting down TeleFlow Campaign API...")
    await runtime.workflow_engine.stop()
    await runtime.feed.close()


docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="TeleFlow Campaign API",
    description="Audience segmentation and post-purchase campaign workflows",
    version="1.0.0",
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

allowed_origins = [
    settings.FRONTEND_URL,
    "http://localhost:5173",  # Vite dev server
    "http://localhost:3000",  # Alternative dev port
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

handlers = create_exception_handlers()
app.add_exception_handler(TeleflowException, handlers["teleflow"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "TeleFlow Campaign API",
        "version": "1.0.0",
        "health": "/health",
    }
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "workflow_engine": "running" if runtime.workflow_engine.started else "stopped",
        "subscriptions": len(runtime.workflow_engine.subscriptions),
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "teleflow.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
