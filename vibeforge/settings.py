import os
from pathlib import Path

BASE_DIR = Path(__file__).parent.parent


def _env(name: str, default: str) -> str:
    return os.environ.get(f"VIBEFORGE_{name}", default)


OLLAMA_URL      = _env("OLLAMA_URL", "http://localhost:11434")
DEFAULT_MODEL   = _env("MODEL", "qwen2.5-coder:14b")
ENHANCE_MODEL   = _env("ENHANCE_MODEL", "llama3.1:8b")
REQUEST_TIMEOUT = int(_env("REQUEST_TIMEOUT", "240"))

BABEL_URL     = _env("BABEL_URL", "https://unpkg.com/@babel/standalone@7/babel.min.js")
REACT_URL     = _env("REACT_URL", "https://unpkg.com/react@18/umd/react.development.js")
REACT_DOM_URL = _env("REACT_DOM_URL", "https://unpkg.com/react-dom@18/umd/react-dom.development.js")

# Tag carried by every sandbox → host diagnostic message.
BRIDGE_TAG = _env("BRIDGE_TAG", "vibeforge-sandbox-log")
SETTLE_MS  = int(_env("SETTLE_MS", "2500"))

DEFAULT_PROJECT_TYPE = _env("PROJECT_TYPE", "html-css-js")
MAX_FIX  = int(_env("MAX_FIX", "2"))
UI_PORT  = int(_env("UI_PORT", "7824"))
WS_PORT  = int(_env("WS_PORT", "7825"))

IDEAS_DIR  = Path(_env("IDEAS_DIR", str(BASE_DIR / "ideas")))
OUTPUT_DIR = Path(_env("OUTPUT_DIR", str(BASE_DIR / "production-ready")))
LOGS_DIR   = Path(_env("LOGS_DIR", str(BASE_DIR / "logs")))
