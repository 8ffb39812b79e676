"""Health check endpoint."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    # Read live globals from api module at request time.
    from snapmark import api

    try:
        bookmark_count = len(api.document_store.index.get("bookmarks", {}))
        load_errors = sum(len(v) for v in api.document_store.load_errors.values())
        storage_accessible = api.document_store.root.is_dir()
    except Exception:
        bookmark_count = 0
        load_errors = 0
        storage_accessible = False

    scheduler = api.sweep_scheduler
    last_sweep = scheduler.last_stats.to_dict() if scheduler and scheduler.last_stats else None

    return {
        "status": "healthy" if storage_accessible else "degraded",
        "version": api.VERSION,
        "storage_accessible": storage_accessible,
        "bookmark_count": bookmark_count,
        "load_errors": load_errors,
        "screenshots_enabled": bool(
            api.runtime_config and api.runtime_config.enable_screenshots
        ),
        "blob_url_mode": api.blob_store.url_mode if api.blob_store else "unknown",
        "captures_in_flight": api.creation_trigger.pending if api.creation_trigger else 0,
        "sweeper_running": bool(scheduler and scheduler.running),
        "last_sweep_at": scheduler.last_run_at.isoformat()
        if scheduler and scheduler.last_run_at
        else None,
        "last_sweep": last_sweep,
    }
