"""FastAPI application and routes."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import ConfigManager
from ..core.blob_store import BlobStore
from ..core.bookmark_manager import BookmarkManager
from ..core.capture_orchestrator import CaptureOrchestrator
from ..core.creation_trigger import CreationTrigger
from ..core.document_store import DocumentStore
from ..core.page_metadata import PageMetadataFetcher
from ..core.retry_sweeper import RetrySweeper, SweepScheduler
from ..core.tag_service import TagService
from ..models.config import AppConfig, EnvSettings
from ..runtime import (
    build_blob_store,
    build_orchestrator,
    build_sweeper,
    open_document_store,
)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

# Global state (will be initialized in lifespan)
config_manager: ConfigManager = None
runtime_config: AppConfig = None
runtime_env_settings: EnvSettings = None
document_store: DocumentStore = None
blob_store: BlobStore = None
tag_service: TagService = None
bookmark_manager: BookmarkManager = None
capture_orchestrator: CaptureOrchestrator = None
creation_trigger: CreationTrigger = None
retry_sweeper: RetrySweeper = None
sweep_scheduler: SweepScheduler = None
metadata_fetcher: PageMetadataFetcher = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global config_manager, runtime_config, runtime_env_settings
    global document_store, blob_store, tag_service, bookmark_manager
    global capture_orchestrator, creation_trigger, retry_sweeper, sweep_scheduler
    global metadata_fetcher

    # Startup
    logger.info("Starting SnapMark API...")

    config_manager = ConfigManager()
    try:
        app_config = config_manager.load_app_config()
        env_settings = config_manager.load_env_settings()
        runtime_config = app_config
        runtime_env_settings = env_settings
    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

    data_dir = config_manager.resolve_data_dir(app_config)
    document_store = await open_document_store(config_manager, app_config)
    blob_store = build_blob_store(config_manager, app_config)

    tag_service = TagService(document_store)
    capture_orchestrator = build_orchestrator(app_config, document_store, blob_store)
    creation_trigger = CreationTrigger(
        capture_orchestrator, enabled=app_config.enable_screenshots
    )
    bookmark_manager = BookmarkManager(
        document_store, tag_service, blob_store, on_created=creation_trigger.publish
    )
    metadata_fetcher = PageMetadataFetcher(timeout=app_config.metadata_timeout)

    retry_sweeper = build_sweeper(app_config, document_store, capture_orchestrator)
    sweep_scheduler = SweepScheduler(
        retry_sweeper, interval_seconds=app_config.sweep_interval_hours * 3600
    )
    if app_config.enable_screenshots and app_config.enable_retry_sweeper:
        sweep_scheduler.start()

    logger.info(
        f"Initialized with data directory {data_dir} "
        f"({len(document_store.index.get('bookmarks', {}))} bookmarks)"
    )

    yield

    # Shutdown
    logger.info("Shutting down SnapMark API...")
    await sweep_scheduler.stop()
    try:
        await asyncio.wait_for(creation_trigger.drain(), timeout=10)
    except asyncio.TimeoutError:
        logger.warning(f"Abandoned {creation_trigger.pending} in-flight captures on shutdown")


# Create FastAPI app
app = FastAPI(
    title="SnapMark API",
    description="Bookmark manager with automatic page thumbnails",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
cors_origins: list = []
try:
    boot_cfg = ConfigManager().load_app_config()
    cors_origins.extend(boot_cfg.allowed_origins)
except Exception:
    # Keep startup robust when config is not available in test/import contexts.
    pass

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and include routers
from .bookmarks import router as bookmarks_router
from .health import router as health_router
from .metadata import router as metadata_router
from .screenshots import blob_router
from .screenshots import router as screenshots_router
from .tags import router as tags_router

app.include_router(bookmarks_router, prefix="/api/v1", tags=["bookmarks"])
app.include_router(screenshots_router, prefix="/api/v1", tags=["screenshots"])
app.include_router(tags_router, prefix="/api/v1", tags=["tags"])
app.include_router(metadata_router, prefix="/api/v1", tags=["metadata"])
app.include_router(health_router, prefix="/api/v1", tags=["health"])
app.include_router(blob_router, tags=["blobs"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "SnapMark API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
    }
