"""Builds the stores and services shared by the API server and the CLI."""

from .config import ConfigManager
from .core.blob_store import BlobStore
from .core.capture_engine import CaptureEngine
from .core.capture_orchestrator import CaptureOrchestrator
from .core.document_store import DocumentStore
from .core.image_processor import ThumbnailProcessor
from .core.retry_sweeper import RetrySweeper
from .models.config import AppConfig


async def open_document_store(cm: ConfigManager, app_config: AppConfig) -> DocumentStore:
    store = DocumentStore(cm.resolve_data_dir(app_config) / "documents")
    await store.initialize()
    return store


def build_blob_store(cm: ConfigManager, app_config: AppConfig) -> BlobStore:
    blob_store = BlobStore(
        root=cm.resolve_data_dir(app_config) / "blobs",
        bucket=app_config.blob_bucket,
        url_mode=app_config.blob_url_mode,
        local_base_url=app_config.blob_local_base_url,
        public_base_url=app_config.blob_public_base_url,
    )
    blob_store.initialize()
    return blob_store


def build_orchestrator(
    app_config: AppConfig, store: DocumentStore, blob_store: BlobStore
) -> CaptureOrchestrator:
    engine = CaptureEngine(
        config=app_config.browser_launch_config(),
        processor=ThumbnailProcessor(
            width=app_config.thumbnail_width, quality=app_config.thumbnail_quality
        ),
    )
    return CaptureOrchestrator(store, blob_store, engine)


def build_sweeper(
    app_config: AppConfig, store: DocumentStore, orchestrator: CaptureOrchestrator
) -> RetrySweeper:
    return RetrySweeper(
        store,
        orchestrator,
        retry_ceiling=app_config.retry_ceiling,
        batch_size=app_config.sweep_batch_size,
        pacing_seconds=app_config.sweep_pacing_seconds,
        stale_processing_minutes=app_config.stale_processing_minutes,
    )
