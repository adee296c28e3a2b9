from __future__ import annotations

import pytest

from tests._fakes import rec
from vibeforge.errors import TransportFailure
from vibeforge.extractor import FileRecord


@pytest.fixture
def static_files() -> list[FileRecord]:
    return [
        rec("index.html", "html",
            "<!DOCTYPE html><html><head><title>T</title></head><body><h1>Hi</h1></body></html>"),
        rec("style.css", "css", "h1 { color: red; }"),
        rec("app.js", "javascript", "console.log('ready');"),
    ]


@pytest.fixture
def transport_error() -> TransportFailure:
    return TransportFailure("Failed to fix code. connection refused")


@pytest.fixture
def sandbox():
    """A SandboxExecutor on real headless Chromium, or skip when the browser is not installed."""
    sync_api = pytest.importorskip("playwright.sync_api")
    from vibeforge.bridge import DiagnosticChannel, DiagnosticLog
    from vibeforge.sandbox import SandboxExecutor

    executor = SandboxExecutor(DiagnosticChannel(DiagnosticLog()), settle_ms=300)
    try:
        executor.browser()
    except sync_api.Error as e:
        executor.close()
        pytest.skip(f"Chromium not available: {e.message.splitlines()[0]}")
    yield executor
    executor.close()
