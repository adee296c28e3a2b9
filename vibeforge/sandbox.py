#!/usr/bin/env python3
"""
Runs an assembled document in headless Chromium (Python Playwright API).

Every run gets a brand-new browser context (no shared storage, cookies or
cache with earlier runs) and a host page that embeds the document in an
iframe with sandbox="allow-scripts" and no allow-same-origin. The only way
out of the iframe is postMessage; the host page forwards each message to a
Playwright binding, and the DiagnosticChannel decides what to keep.
"""
import logging, tempfile, threading, webbrowser
from pathlib import Path

from vibeforge import settings
from vibeforge.bridge import DiagnosticChannel
from vibeforge.errors import SandboxError

log = logging.getLogger("sandbox")

RELAY_BINDING = "__vibeforgeRelay"

HOST_PAGE = """\
<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><title>VibeForge Preview</title></head>
<body style="margin:0">
<script>
  window.addEventListener('message', function (event) {
    try { window.__vibeforgeRelay(event.data); } catch (e) { /* unserialisable → not ours */ }
  });
</script>
</body>
</html>"""

_MOUNT_JS = """(doc) => {
  const frame = document.createElement('iframe');
  frame.setAttribute('sandbox', 'allow-scripts');
  frame.setAttribute('title', 'Live Preview');
  frame.style.cssText = 'border:0;width:100vw;height:100vh;display:block';
  frame.srcdoc = doc;
  document.body.appendChild(frame);
}"""


class SandboxExecutor:
    def __init__(self, channel: DiagnosticChannel, settle_ms: int = settings.SETTLE_MS,
                 viewport: dict = None):
        self.channel   = channel
        self.settle_ms = settle_ms
        self.viewport  = viewport or {"width": 1280, "height": 720}
        self._pw       = None
        self._browser  = None
        self._context  = None
        self._page     = None

    # ── Public API ────────────────────────────────────────────────────────────

    def run(self, document: str, settle_ms: int = None) -> int:
        """Load `document` into a fresh sandbox and collect diagnostics. Returns the session id."""
        from playwright.sync_api import Error as PWError

        session = self.channel.begin_session()
        settle  = self.settle_ms if settle_ms is None else settle_ms
        try:
            self._discard_context()
            browser = self._ensure_browser()
            self._context = browser.new_context(viewport=self.viewport)
            page = self._context.new_page()
            page.expose_function(
                RELAY_BINDING, lambda data: self.channel.deliver(data, session)
            )
            page.set_content(HOST_PAGE)
            page.evaluate(_MOUNT_JS, document)
            self._page = page
            log.info(f"▶ Preview session {session} loaded ({len(document)}B), settling {settle}ms")
            page.wait_for_timeout(settle)
        except PWError as e:
            self._discard_context()
            raise SandboxError(f"Sandbox run failed: {e.message}") from e
        return session

    def screenshot(self, path: Path) -> bool:
        if self._page is None:
            return False
        self._page.screenshot(path=str(path), full_page=False)
        log.info(f"📸 Screenshot saved → {path}")
        return True

    def close(self):
        self._discard_context()
        if self._browser is not None:
            self._browser.close()
        if self._pw is not None:
            self._pw.stop()
        self._browser = self._pw = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    # ── Internals ─────────────────────────────────────────────────────────────

    def browser(self):
        """The executor's Chromium, launched on first use. Shared with BabelTranspiler."""
        return self._ensure_browser()

    def _ensure_browser(self):
        if self._browser is not None:
            return self._browser
        from playwright.sync_api import sync_playwright

        log.info("🎭 Launching Chromium (headless)...")
        self._pw      = sync_playwright().start()
        self._browser = self._pw.chromium.launch(headless=True)
        return self._browser

    def _discard_context(self):
        # A superseded preview must not keep running or reporting.
        if self._context is not None:
            try:
                self._context.close()
            finally:
                self._context = None
                self._page = None


# ── Standalone view ───────────────────────────────────────────────────────────

def open_standalone(document: str, grace_seconds: float = 5.0) -> Path:
    """
    Open the document in the user's browser via a temp file. The file is removed
    once the browser has had time to read it, so repeated previews leave nothing behind.
    """
    with tempfile.NamedTemporaryFile("w", suffix=".html", prefix="vibeforge-",
                                     delete=False, encoding="utf-8") as fh:
        fh.write(document)
        path = Path(fh.name)
    webbrowser.open(path.as_uri())
    log.info(f"🖥️  Opened standalone preview → {path}")
    timer = threading.Timer(grace_seconds, lambda: path.unlink(missing_ok=True))
    timer.daemon = True
    timer.start()
    return path
