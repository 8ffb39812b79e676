"""Shared fixtures: temporary stores and a stub browser renderer."""

import asyncio
import io
import tempfile
from pathlib import Path

import pytest
from PIL import Image

from snapmark.core.blob_store import BlobStore
from snapmark.core.capture_engine import CaptureEngine
from snapmark.core.capture_orchestrator import CaptureOrchestrator
from snapmark.core.document_store import DocumentStore
from snapmark.models.capture import BrowserLaunchConfig


def make_png(width: int = 1280, height: int = 720, mode: str = "RGB") -> bytes:
    color = (30, 120, 200, 255) if mode == "RGBA" else (30, 120, 200)
    image = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class StubBrowser:
    """Stands in for PlaywrightBrowser; records its lifecycle."""

    def __init__(self, factory, config):
        self.factory = factory
        self.config = config
        self.started = False
        self.close_calls = 0
        self.visited = []

    async def start(self):
        if self.factory.launch_error is not None:
            raise self.factory.launch_error
        self.started = True

    async def screenshot(self, url):
        self.visited.append(url)
        if self.factory.delay:
            await asyncio.sleep(self.factory.delay)
        error = self.factory.errors.get(url, self.factory.error)
        if error is not None:
            raise error
        return self.factory.png

    async def close(self):
        self.close_calls += 1


class StubBrowserFactory:
    """Browser factory handed to CaptureEngine in tests."""

    def __init__(self, png=None, error=None, delay=0.0, launch_error=None, errors=None):
        self.png = png if png is not None else make_png()
        self.error = error
        self.errors = errors or {}
        self.delay = delay
        self.launch_error = launch_error
        self.browsers = []

    def __call__(self, config):
        browser = StubBrowser(self, config)
        self.browsers.append(browser)
        return browser


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture
def stub_factory():
    """The StubBrowserFactory class, for tests that configure failures."""
    return StubBrowserFactory


@pytest.fixture
def temp_root():
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
async def document_store(temp_root):
    store = DocumentStore(temp_root / "documents")
    await store.initialize()
    return store


@pytest.fixture
def blob_store(temp_root):
    store = BlobStore(temp_root / "blobs", bucket="test-bucket")
    store.initialize()
    return store


@pytest.fixture
def make_orchestrator(document_store, blob_store):
    """Build an orchestrator around a given stub browser factory."""

    def _make(factory, budget: float = 5.0):
        engine = CaptureEngine(
            config=BrowserLaunchConfig(capture_budget_seconds=budget, settle_delay_seconds=0),
            browser_factory=factory,
        )
        return CaptureOrchestrator(document_store, blob_store, engine)

    return _make
