"""
File records + project type → one self-contained HTML document.

assemble() never raises. Every failure path still yields a displayable,
non-empty document plus error-level diagnostics, so the repair loop can act
on an assembly problem exactly as it acts on a runtime error.
"""
import html, logging, re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from vibeforge import settings
from vibeforge.bridge import error_event, instrumentation_script
from vibeforge.errors import AssemblyError, NoEntryPoint, TranspileFailure

log = logging.getLogger("assembler")


class ProjectType(str, Enum):
    STATIC         = "html-css-js"
    STATIC_COMPLEX = "html-css-js-complex"
    COMPONENT      = "react"

    @classmethod
    def parse(cls, value) -> "ProjectType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown project type {value!r}, expected one of {[p.value for p in cls]}"
            ) from None

    @property
    def is_static(self) -> bool:
        return self in (ProjectType.STATIC, ProjectType.STATIC_COMPLEX)


@dataclass
class Assembly:
    document: str
    diagnostics: list = field(default_factory=list)
    error: Optional[AssemblyError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ── File roles ────────────────────────────────────────────────────────────────

MARKUP, STYLESHEET, SCRIPT, COMPONENT = "markup", "stylesheet", "script", "component"

ROLE_TAGS = {
    MARKUP:     {"html", "htm"},
    STYLESHEET: {"css"},
    SCRIPT:     {"javascript", "js", "mjs"},
    COMPONENT:  {"tsx", "jsx", "typescript", "react", "ts"},
}
ROLE_EXTENSIONS = {
    MARKUP:     {".html", ".htm"},
    STYLESHEET: {".css"},
    SCRIPT:     {".js", ".mjs"},
    COMPONENT:  {".tsx", ".jsx", ".ts"},
}


def _role_by_tag(f) -> Optional[str]:
    tag = (f.language or "").strip().lower().lstrip(".")
    for role, tags in ROLE_TAGS.items():
        if tag in tags:
            return role
    return None


def _role_by_extension(f) -> Optional[str]:
    ext = PurePosixPath(f.file_name or "").suffix.lower()
    for role, exts in ROLE_EXTENSIONS.items():
        if ext in exts:
            return role
    return None


def role_of(f, prefer: str = "language") -> Optional[str]:
    """
    Static projects trust the language tag first (an .html file tagged "html" is
    the entry point); component projects trust the extension first, since
    models often tag App.jsx as "javascript".
    """
    if prefer == "extension":
        return _role_by_extension(f) or _role_by_tag(f)
    return _role_by_tag(f) or _role_by_extension(f)


# ── Helpers ───────────────────────────────────────────────────────────────────

_HEAD_OPEN  = re.compile(r"<head\b[^>]*>", re.IGNORECASE)
_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
_BODY_CLOSE = re.compile(r"</body\s*>", re.IGNORECASE)
_HTML_OPEN  = re.compile(r"<html\b[^>]*>", re.IGNORECASE)
_DOCTYPE    = re.compile(r"<!doctype[^>]*>", re.IGNORECASE)


def _escape_closing(code: str, tag: str) -> str:
    """Keep inlined code from terminating its own <script>/<style> element."""
    return re.sub(rf"</({tag})", r"<\\/\1", code, flags=re.IGNORECASE)


def _insert_at(text: str, pos: int, block: str) -> str:
    return text[:pos] + block + text[pos:]


def _insert_head_start(doc: str, block: str) -> str:
    m = _HEAD_OPEN.search(doc)
    if m:
        return _insert_at(doc, m.end(), block)
    # No <head>: open one right after <html>/doctype so the block still runs first.
    anchor = _HTML_OPEN.search(doc) or _DOCTYPE.search(doc)
    if anchor:
        return _insert_at(doc, anchor.end(), f"<head>{block}</head>")
    return f"<head>{block}</head>" + doc


def _insert_before_head_end(doc: str, block: str) -> Optional[str]:
    m = _HEAD_CLOSE.search(doc)
    if not m:
        return None
    return _insert_at(doc, m.start(), block)


def _insert_before_body_end(doc: str, block: str) -> str:
    matches = list(_BODY_CLOSE.finditer(doc))
    if not matches:
        return doc + block
    return _insert_at(doc, matches[-1].start(), block)


def fallback_document(title: str, message: str) -> str:
    return (
        '<!DOCTYPE html><html><head><meta charset="UTF-8"></head><body>'
        '<div style="font-family: sans-serif; padding: 1rem; color: #ef4444;">'
        f"<h2>{html.escape(title)}</h2>"
        "<p>Could not generate a live preview. Check the console for details.</p>"
        '<pre style="white-space: pre-wrap; background: #fef2f2; padding: 1rem; border-radius: 4px;">'
        f"{html.escape(message)}</pre></div></body></html>"
    )


def _failure(error: AssemblyError, title: str, diagnostic: str) -> Assembly:
    log.warning(f"Assembly failed: {diagnostic}")
    return Assembly(
        document=fallback_document(title, error.message),
        diagnostics=[error_event(diagnostic)],
        error=error,
    )


# ── Strategies ────────────────────────────────────────────────────────────────

def assemble_static(files, tag: str = settings.BRIDGE_TAG) -> Assembly:
    entry = next((f for f in files if role_of(f) == MARKUP), None)
    if entry is None:
        err = NoEntryPoint("No HTML file found in the generated project.")
        return _failure(err, "Preview Error", err.message)

    styles  = [f for f in files if role_of(f) == STYLESHEET]
    scripts = [f for f in files if role_of(f) == SCRIPT]
    style_block  = "\n".join(f"<style>{_escape_closing(f.code, 'style')}</style>" for f in styles)
    script_block = "\n".join(f"<script>{_escape_closing(f.code, 'script')}</script>" for f in scripts)

    doc = entry.code
    head_block = instrumentation_script(tag)
    if style_block:
        with_styles = _insert_before_head_end(doc, style_block)
        if with_styles is None:
            head_block += style_block
        else:
            doc = with_styles
    if script_block:
        doc = _insert_before_body_end(doc, script_block)
    doc = _insert_head_start(doc, head_block)

    log.info(
        f"Assembled {entry.file_name} + {len(styles)} stylesheet(s) + "
        f"{len(scripts)} script(s) → {len(doc)}B"
    )
    return Assembly(document=doc)


_COMPONENT_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
__INSTRUMENTATION__
<style>__CSS__</style>
<script crossorigin src="__REACT_URL__"></script>
<script crossorigin src="__REACT_DOM_URL__"></script>
</head>
<body>
<div id="root"></div>
<script>
(function () {
  var module = { exports: {} };
  var exports = module.exports;
  var require = function (name) {
    if (name === 'react') return React;
    if (name === 'react-dom' || name === 'react-dom/client') return ReactDOM;
    throw new Error("Module '" + name + "' is not available in the preview");
  };
  var mounted = false;
  try {
    ['createRoot', 'render'].forEach(function (k) {
      var fn = ReactDOM[k];
      if (typeof fn === 'function') {
        ReactDOM[k] = function () { mounted = true; return fn.apply(ReactDOM, arguments); };
      }
    });
__CODE__
    var Root = module.exports.default || (typeof App !== 'undefined' ? App : null);
    if (!mounted && typeof Root === 'function') {
      ReactDOM.createRoot(document.getElementById('root')).render(React.createElement(Root));
    }
  } catch (e) {
    console.error(e);
  }
})();
</script>
</body>
</html>"""


def assemble_component(files, transpiler, tag: str = settings.BRIDGE_TAG) -> Assembly:
    components = [f for f in files if role_of(f, prefer="extension") == COMPONENT]
    styles     = [f for f in files if role_of(f, prefer="extension") == STYLESHEET]
    if not components:
        err = NoEntryPoint("No .tsx/.jsx files found for React preview.")
        return _failure(err, "React Preview Error", f"Babel Transpilation Failed: {err.message}")

    combined_src = "\n\n".join(f.code for f in components)
    combined_css = "\n\n".join(f.code for f in styles)

    try:
        if transpiler is None:
            from vibeforge.transpiler import BabelTranspiler
            with BabelTranspiler() as babel:
                code = babel(combined_src)
        else:
            code = transpiler(combined_src)
    except TranspileFailure as e:
        return _failure(e, "React Preview Error", f"Babel Transpilation Failed: {e.message}")

    doc = (
        _COMPONENT_TEMPLATE
        .replace("__INSTRUMENTATION__", instrumentation_script(tag))
        .replace("__CSS__", _escape_closing(combined_css, "style"))
        .replace("__REACT_URL__", html.escape(settings.REACT_URL))
        .replace("__REACT_DOM_URL__", html.escape(settings.REACT_DOM_URL))
    )
    # Code goes in last so nothing inside it is mistaken for a placeholder.
    doc = doc.replace("__CODE__", _escape_closing(code, "script"), 1)
    log.info(f"Assembled {len(components)} component file(s) → {len(doc)}B")
    return Assembly(document=doc)


def assemble(files, project_type, transpiler=None, tag: str = settings.BRIDGE_TAG) -> Assembly:
    """Pure assembly entry point. Never raises."""
    files = list(files)
    try:
        ptype = ProjectType.parse(project_type)
    except ValueError as e:
        err = AssemblyError(str(e))
        return _failure(err, "Preview Error", str(e))
    if ptype.is_static:
        return assemble_static(files, tag)
    return assemble_component(files, transpiler, tag)
