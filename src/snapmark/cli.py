"""Command-line interface for SnapMark."""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx
import uvicorn


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="snapmark")
def cli():
    """SnapMark - bookmarks with automatic page thumbnails."""
    pass


@cli.command()
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration directory (default: ~/.snapmark)",
)
@click.option(
    "--user-id",
    type=str,
    default="local-user",
    show_default=True,
    help="User the generated API token authenticates as",
)
@click.option(
    "--token",
    type=str,
    default=None,
    help="API token to store (a random one is generated when omitted)",
)
@click.option(
    "--data-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Where documents and thumbnails are stored (default: <config-dir>/data)",
)
@click.option(
    "--url-mode",
    type=click.Choice(["local", "public"], case_sensitive=False),
    default="local",
    show_default=True,
    help="Serve thumbnails from this server ('local') or a public base URL",
)
def init(
    config_dir: Optional[Path],
    user_id: str,
    token: Optional[str],
    data_dir: Optional[Path],
    url_mode: str,
):
    """Initialize SnapMark configuration.

    Creates the configuration directory, an API token and the data directory.
    """
    from .config import ConfigError, ConfigManager
    from .models.config import AppConfig

    try:
        cm = ConfigManager(config_dir)

        click.echo(f"Initializing SnapMark at {cm.config_dir}...")
        cm.config_dir.mkdir(parents=True, exist_ok=True)

        token = cm.create_env_file(user_id=user_id, token=token)
        click.echo("[OK] Created .env file")

        app_config = AppConfig(
            data_dir=str(data_dir) if data_dir else None,
            blob_url_mode=url_mode.lower(),
        )
        resolved_data_dir = cm.resolve_data_dir(app_config)
        (resolved_data_dir / "documents").mkdir(parents=True, exist_ok=True)
        (resolved_data_dir / "blobs").mkdir(parents=True, exist_ok=True)

        cm.save_app_config(app_config)
        click.echo("[OK] Created config.yaml")
        click.echo(f"[OK] Created data directory at {resolved_data_dir}")

        click.echo("\n" + "=" * 60)
        click.echo("[SUCCESS] SnapMark initialized successfully!")
        click.echo("=" * 60)
        click.echo(f"\nConfiguration directory: {cm.config_dir}")
        click.echo(f"Data directory: {resolved_data_dir}")
        click.echo(f"API token for {user_id}: {token}")
        click.echo("\nInstall the browser once with: playwright install chromium")
        click.echo("Start the server with: snapmark serve")

    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", type=str, default=None, help="Host to bind (default: from config)")
@click.option("--port", type=int, default=None, help="Port to bind (default: from config)")
@click.option(
    "--reload",
    is_flag=True,
    default=False,
    help="Enable auto-reload for development",
)
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration directory (default: ~/.snapmark)",
)
def serve(host: Optional[str], port: Optional[int], reload: bool, config_dir: Optional[Path]):
    """Start the SnapMark API server."""
    from .config import ConfigError, ConfigManager

    try:
        cm = ConfigManager(config_dir)

        if not cm.config_file.exists():
            click.echo("Error: Configuration not found", err=True)
            click.echo(f"Run 'snapmark init' to create configuration at {cm.config_dir}", err=True)
            sys.exit(1)

        if not cm.env_file.exists():
            click.echo("Error: .env file not found", err=True)
            click.echo(f"Run 'snapmark init' to create .env file at {cm.config_dir}", err=True)
            sys.exit(1)

        try:
            app_config = cm.load_app_config()
            cm.load_env_settings()
        except ConfigError as e:
            click.echo(f"Configuration error: {e}", err=True)
            sys.exit(1)

        # The app reads its configuration again inside the server process
        if config_dir:
            os.environ["SNAPMARK_CONFIG_DIR"] = str(config_dir)

        host = host or app_config.host
        port = port or app_config.port

        click.echo("=" * 60)
        click.echo("Starting SnapMark API server...")
        click.echo("=" * 60)
        click.echo(f"Config directory: {cm.config_dir}")
        click.echo(f"Server URL: http://{host}:{port}")
        click.echo(f"API docs: http://{host}:{port}/docs")
        click.echo("=" * 60)
        click.echo("\nPress Ctrl+C to stop the server\n")

        uvicorn.run(
            "snapmark.api:app",
            host=host,
            port=port,
            reload=reload,
            log_level=app_config.log_level.lower(),
        )

    except KeyboardInterrupt:
        click.echo("\n\nShutting down server...")
        sys.exit(0)
    except Exception as e:
        click.echo(f"Error starting server: {e}", err=True)
        sys.exit(1)


async def _run_sweep(cm, app_config, dry_run: bool) -> dict:
    from .runtime import build_blob_store, build_orchestrator, build_sweeper, open_document_store

    store = await open_document_store(cm, app_config)
    blob_store = build_blob_store(cm, app_config)
    sweeper = build_sweeper(app_config, store, build_orchestrator(app_config, store, blob_store))

    if dry_run:
        candidates = sweeper.select_candidates()
        return {
            "candidates": [
                {
                    "id": doc["id"],
                    "status": doc.get("screenshot_status"),
                    "retries": doc.get("screenshot_retries") or 0,
                }
                for doc in candidates
            ]
        }

    stats = await sweeper.sweep()
    return stats.to_dict()


@cli.command()
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration directory (default: ~/.snapmark)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="List the bookmarks a sweep would retry without capturing",
)
def sweep(config_dir: Optional[Path], dry_run: bool):
    """Retry failed screenshot captures once (for cron)."""
    from .config import ConfigError, ConfigManager
    from .core.document_store import StorageError

    try:
        cm = ConfigManager(config_dir)
        app_config = cm.load_app_config()
        _configure_logging(app_config.log_level)

        result = asyncio.run(_run_sweep(cm, app_config, dry_run))
        click.echo(json.dumps(result, indent=2))

    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except StorageError as e:
        click.echo(f"Sweep aborted: {e}", err=True)
        sys.exit(1)


async def _run_repair(cm, app_config, dry_run: bool) -> dict:
    from .core.maintenance import repair_screenshot_urls
    from .runtime import build_blob_store, open_document_store

    store = await open_document_store(cm, app_config)
    blob_store = build_blob_store(cm, app_config)
    return await repair_screenshot_urls(store, blob_store, dry_run=dry_run)


@cli.command(name="repair-urls")
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration directory (default: ~/.snapmark)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Report what would change without writing",
)
def repair_urls(config_dir: Optional[Path], dry_run: bool):
    """Re-issue stored thumbnail URLs for the current URL mode."""
    from .config import ConfigError, ConfigManager
    from .core.document_store import StorageError

    try:
        cm = ConfigManager(config_dir)
        app_config = cm.load_app_config()
        _configure_logging(app_config.log_level)

        result = asyncio.run(_run_repair(cm, app_config, dry_run))

        click.echo(f"Bookmarks scanned: {result['total']}")
        click.echo(f"URLs {'to update' if dry_run else 'updated'}: {result['updated']}")
        click.echo(f"Skipped: {result['skipped']}")

    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except StorageError as e:
        click.echo(f"Repair failed: {e}", err=True)
        sys.exit(1)


def _is_placeholder_secret(value: Optional[str]) -> bool:
    """Detect placeholder/empty secret values that should be replaced."""
    if value is None:
        return True

    normalized = value.strip().lower()
    if not normalized:
        return True

    markers = (
        "your-",
        "replace-with",
        "<random",
        "example",
        "changeme",
    )
    return any(marker in normalized for marker in markers)


@cli.command()
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration directory (default: ~/.snapmark)",
)
@click.option(
    "--api-url",
    type=str,
    default=None,
    help="Optional running API URL to verify (example: http://127.0.0.1:8000)",
)
def doctor(config_dir: Optional[Path], api_url: Optional[str]):
    """Validate local setup and report actionable fixes."""
    from .config import ConfigError, ConfigManager

    cm = ConfigManager(config_dir)
    failures = 0
    warnings = 0
    app_config = None
    env_settings = None

    def report(status: str, message: str, fix: Optional[str] = None) -> None:
        click.echo(f"[{status}] {message}")
        if fix:
            click.echo(f"      Fix: {fix}")

    click.echo("=" * 60)
    click.echo("SnapMark doctor")
    click.echo("=" * 60)
    click.echo(f"Config directory: {cm.config_dir}")

    if cm.config_file.exists():
        report("PASS", f"Found config file: {cm.config_file}")
    else:
        failures += 1
        report("FAIL", f"Missing config file: {cm.config_file}", "Run: snapmark init")

    if cm.env_file.exists():
        report("PASS", f"Found env file: {cm.env_file}")
    else:
        failures += 1
        report("FAIL", f"Missing env file: {cm.env_file}", "Run: snapmark init")

    if cm.config_file.exists():
        try:
            app_config = cm.load_app_config()
            report("PASS", "config.yaml parsed successfully")
        except ConfigError as e:
            failures += 1
            report("FAIL", f"config.yaml validation failed: {e}")

    if cm.env_file.exists():
        try:
            env_settings = cm.load_env_settings()
            report("PASS", ".env parsed successfully")
        except ConfigError as e:
            failures += 1
            report("FAIL", f".env validation failed: {e}")

    if env_settings is not None:
        tokens = env_settings.api_tokens
        if not tokens:
            failures += 1
            report("FAIL", "API_TOKENS is empty", "Run: snapmark init --token <token>")
        elif any(_is_placeholder_secret(token) for token in tokens):
            failures += 1
            report(
                "FAIL",
                "API_TOKENS contains a placeholder token",
                "Replace it with a random value, e.g. from: snapmark init",
            )
        else:
            report("PASS", f"{len(tokens)} API token(s) configured")

    if app_config is not None:
        try:
            cm.validate_data_dir(app_config)
            report("PASS", f"Data directory is accessible: {cm.resolve_data_dir(app_config)}")
        except ConfigError as e:
            failures += 1
            report("FAIL", f"Data directory is not accessible: {e}", "Run: snapmark init")

        if not app_config.enable_screenshots:
            warnings += 1
            report("WARN", "Screenshot capture is disabled (enable_screenshots: false)")
        elif app_config.browser_executable_path:
            if Path(app_config.browser_executable_path).is_file():
                report("PASS", f"Browser binary found: {app_config.browser_executable_path}")
            else:
                failures += 1
                report(
                    "FAIL",
                    f"Browser binary not found: {app_config.browser_executable_path}",
                    "Fix browser_executable_path or remove it to use Playwright's Chromium",
                )
        else:
            report("PASS", "Using Playwright's bundled Chromium (playwright install chromium)")

        if app_config.blob_url_mode == "public":
            warnings += 1
            report(
                "WARN",
                f"Thumbnail URLs point at {app_config.blob_public_base_url}",
                "Make sure the blob directory is published there",
            )

    if api_url:
        health_url = f"{api_url.rstrip('/')}/api/v1/health"
        try:
            response = httpx.get(health_url, timeout=3.0)
            if response.status_code == 200:
                report("PASS", f"Server is reachable: {health_url}")
            else:
                failures += 1
                report(
                    "FAIL",
                    f"Server health check returned HTTP {response.status_code}: {health_url}",
                    "Start server: snapmark serve --port 8000",
                )
        except Exception as e:
            failures += 1
            report(
                "FAIL",
                f"Server is not reachable at {health_url} ({e})",
                "Start server and ensure API URL matches --api-url",
            )
    else:
        warnings += 1
        report("WARN", "Skipped server reachability check (no --api-url provided)")

    click.echo("-" * 60)
    click.echo(f"Summary: {failures} fail, {warnings} warn")

    if failures:
        sys.exit(1)
    sys.exit(0)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
