import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from zenyukti.core.config import settings
from zenyukti.core.database import init_db
from zenyukti.core.errors import install_error_handlers
from zenyukti.core.scheduler import start_scheduler, stop_scheduler
from zenyukti.storage.local_storage import UPLOADS_URL_PREFIX, storage
from zenyukti.api.routes import auth

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: Create missing tables, start background scheduler
    Shutdown: Stop background scheduler
    """
    # In production, use migrations instead of create_all
    init_db()
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="ZenYukti Accounts API",
    description="Member registration, login and profile management for the ZenYukti site",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware - allows frontend to make requests to backend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes."""
    logger.info("request %s %s", request.method, request.url.path)
    response = await call_next(request)
    logger.info(
        "response %s %s status %s",
        request.method,
        request.url.path,
        response.status_code,
    )
    return response


# All API routes are prefixed with /api for consistency
app.include_router(auth.router, prefix="/api")

# Uploaded avatars are served straight from the upload directory
app.mount(UPLOADS_URL_PREFIX, StaticFiles(directory=storage.upload_dir), name="uploads")


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {"message": "ZenYukti Accounts API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint - used by monitoring/deployment tools"""
    return {"status": "healthy"}
