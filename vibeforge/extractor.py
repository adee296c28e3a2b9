"""
Turns a raw model response into an ordered list of FileRecords.

The model is asked for a bare JSON array of {"fileName", "language", "code"}
objects, but in practice it wraps the array in markdown fences, adds prose
before or after it, or prints other arrays inside the generated code. The
candidate payload is located by an ordered chain of strategies; the first
strategy that yields a candidate wins, even if that candidate later fails to
parse. A later heuristic is never trusted over an earlier one.
"""
import json, logging, re
from dataclasses import dataclass
from typing import Callable, Optional

from vibeforge.errors import ExtractionError, MalformedStructure, NoStructureFound

log = logging.getLogger("extractor")

FILE_NAME_MARKER = '"fileName"'
CODE_MARKER      = '"code"'

_FENCE_RE = re.compile(r"```[\w+.-]*[^\S\n]*\n?(.*?)```", re.DOTALL)
# Closing fence alone on its line. JSON strings cannot hold a raw newline, so a
# fence inside a file's code never matches here.
_LINE_FENCE_RE = re.compile(r"```[\w+.-]*[^\S\n]*\n(.*?)\n[^\S\n]*```[^\S\n]*$",
                            re.DOTALL | re.MULTILINE)


@dataclass
class FileRecord:
    file_name: str
    language: str
    code: str

    @classmethod
    def from_dict(cls, data: dict) -> "FileRecord":
        return cls(
            file_name=str(data.get("fileName") or ""),
            language=str(data.get("language") or ""),
            code=_as_text(data.get("code")),
        )

    def to_dict(self) -> dict:
        return {"fileName": self.file_name, "language": self.language, "code": self.code}


@dataclass
class ParseResult:
    files: Optional[list] = None
    error: Optional[ExtractionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


# ── Candidate strategies (each total: text → candidate or None) ───────────────

def fenced_block(text: str) -> Optional[str]:
    m = _FENCE_RE.search(text)
    if not m:
        return None
    body = m.group(1).strip()
    if body.startswith("[") and not body.endswith("]"):
        # The array was cut short by a fence inside one of its files.
        whole = _LINE_FENCE_RE.match(text, m.start())
        if whole and whole.group(1).strip().endswith("]"):
            return whole.group(1).strip()
    return body


def trailing_array(text: str) -> Optional[str]:
    start, end = text.rfind("["), text.rfind("]")
    if start == -1 or end == -1 or end < start:
        return None
    candidate = text[start:end + 1]
    # An array without these markers is example data inside generated code.
    if FILE_NAME_MARKER in candidate and CODE_MARKER in candidate:
        return candidate
    return None


def whole_response(text: str) -> Optional[str]:
    t = text.strip()
    if t.startswith("[") and t.endswith("]"):
        return t
    return None


STRATEGIES: list[tuple[str, Callable[[str], Optional[str]]]] = [
    ("fenced-block",   fenced_block),
    ("trailing-array", trailing_array),
    ("whole-response", whole_response),
]


def find_candidate(text: str) -> tuple[Optional[str], Optional[str]]:
    """Return (strategy name, candidate) for the first strategy that matches."""
    for name, strategy in STRATEGIES:
        candidate = strategy(text)
        if candidate is not None:
            return name, candidate
    return None, None


# ── Public API ────────────────────────────────────────────────────────────────

def parse_files(text: str) -> list:
    """Parse a model response into FileRecords. Raises ExtractionError."""
    text = text or ""
    name, candidate = find_candidate(text)
    if candidate is None:
        log.warning(f"No file structure in response ({len(text)} chars): {text[:120]!r}")
        raise NoStructureFound(
            "The AI returned a response that did not contain a recognizable code structure."
        )
    log.debug(f"Candidate found by {name} ({len(candidate)} chars)")

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        log.warning(f"Candidate from {name} is not valid JSON ({e}): {candidate[:120]!r}")
        raise MalformedStructure(f"The AI returned a malformed code structure ({e.msg}).") from e
    except (RecursionError, ValueError) as e:
        log.warning(f"Candidate from {name} could not be decoded ({type(e).__name__})")
        raise MalformedStructure(
            "The AI returned a malformed code structure (too deeply nested to decode)."
        ) from e

    if not isinstance(parsed, list):
        raise MalformedStructure(
            "The AI returned a malformed code structure (expected an array of files)."
        )
    if parsed:
        first = parsed[0]
        # Sentinel check on the first element only.
        if not isinstance(first, dict) or "fileName" not in first or "code" not in first:
            raise MalformedStructure(
                "The AI returned a malformed code structure "
                "(the array does not appear to contain file objects)."
            )

    files = []
    for i, item in enumerate(parsed):
        if not isinstance(item, dict):
            log.warning(f"Skipping non-object element #{i} in file list")
            continue
        files.append(FileRecord.from_dict(item))
    log.info(f"Extracted {len(files)} file(s) via {name}")
    return files


def extract(text: str) -> ParseResult:
    """Total version of parse_files: never raises, returns a ParseResult."""
    try:
        return ParseResult(files=parse_files(text))
    except ExtractionError as e:
        return ParseResult(error=e)


def serialize(files) -> str:
    """Records → the JSON array format the model is asked to produce."""
    return json.dumps([f.to_dict() for f in files], indent=2, ensure_ascii=False)


def records_from_dicts(items) -> list:
    return [FileRecord.from_dict(i) for i in items if isinstance(i, dict)]

