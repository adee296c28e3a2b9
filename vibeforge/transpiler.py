#!/usr/bin/env python3
"""
JSX/TSX → plain browser JavaScript.

Uses Babel standalone evaluated inside headless Chromium (Python Playwright API),
so no Node toolchain is needed. ES module syntax is rewritten to CommonJS; the
assembled React document provides a tiny require() shim for it.

Any callable `source -> code` that raises TranspileFailure can stand in for
BabelTranspiler (tests use plain functions).
"""
import logging
from typing import Callable

from vibeforge import settings
from vibeforge.errors import TranspileFailure

log = logging.getLogger("transpiler")

Transpiler = Callable[[str], str]

BABEL_OPTIONS = {
    "presets": ["react", "typescript"],
    "plugins": ["transform-modules-commonjs"],
    "filename": "app.tsx",
}

_TRANSFORM_JS = "([src, opts]) => Babel.transform(src, opts).code"


class BabelTranspiler:
    """
    Lazily launches one headless Chromium page with Babel loaded and reuses it.
    Playwright's sync API is thread-bound: call from a single thread, close() when done.
    """

    def __init__(self, babel_url: str = settings.BABEL_URL, options: dict = None, browser=None):
        self.babel_url = babel_url
        self.options   = dict(options or BABEL_OPTIONS)
        # Optional callable returning a shared Browser (one Playwright per thread).
        self._shared   = browser
        self._pw       = None
        self._browser  = None
        self._page     = None

    def __call__(self, source: str) -> str:
        from playwright.sync_api import Error as PWError

        try:
            page = self._ensure_page()
        except PWError as e:
            self.close()
            raise TranspileFailure(f"Babel could not be loaded: {_error_text(e)}") from e

        try:
            code = page.evaluate(_TRANSFORM_JS, [source, self.options])
        except PWError as e:
            raise TranspileFailure(_error_text(e)) from e
        log.info(f"Transpiled {len(source)}B → {len(code)}B")
        return code

    def _ensure_page(self):
        if self._page is not None and not self._page.is_closed():
            return self._page
        if self._shared is not None:
            page = self._shared().new_page()
        else:
            from playwright.sync_api import sync_playwright

            log.info(f"🎭 Launching Chromium for Babel ({self.babel_url})")
            self._pw      = sync_playwright().start()
            self._browser = self._pw.chromium.launch(headless=True)
            page          = self._browser.new_page()
        page.set_content("<!DOCTYPE html><html><head></head><body></body></html>")
        page.add_script_tag(url=self.babel_url)
        self._page = page
        return page

    def close(self):
        if self._browser is not None:
            self._browser.close()
        elif self._page is not None and not self._page.is_closed():
            self._page.close()
        if self._pw is not None:
            self._pw.stop()
        self._pw = self._browser = self._page = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _error_text(err) -> str:
    msg = getattr(err, "message", None) or str(err)
    msg = msg.strip()
    if msg.startswith("Error: "):
        msg = msg[len("Error: "):]
    return msg or "unknown error"
