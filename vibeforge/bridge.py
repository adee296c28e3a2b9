"""
The only channel between the sandboxed preview and the host.

Inside the sandbox, the instrumentation snippet (see instrumentation_script)
wraps console.* and the global error hooks and posts tagged envelopes:

    {"source": BRIDGE_TAG, "payload": {"level": "error", "message": "..."}}

On the host side a DiagnosticChannel accepts envelopes for the current
preview session only, drops anything untagged, and appends to a
DiagnosticLog in receipt order. No reordering, no batching, no dedup.
"""
import json, logging, threading, time
from dataclasses import dataclass, field
from typing import Callable, Optional

from vibeforge import settings

log = logging.getLogger("bridge")

LEVELS = ("log", "warn", "error", "info")


@dataclass
class DiagnosticEvent:
    level: str
    message: str
    timestamp: str = field(default_factory=lambda: time.strftime("%H:%M:%S"))

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    def to_dict(self) -> dict:
        return {"level": self.level, "message": self.message, "timestamp": self.timestamp}


def error_event(message: str) -> DiagnosticEvent:
    return DiagnosticEvent("error", message)


class DiagnosticLog:
    """Append-only list of DiagnosticEvents. Cleared on new generation / successful fix."""

    def __init__(self):
        self._events: list[DiagnosticEvent] = []

    def append(self, event: DiagnosticEvent) -> None:
        self._events.append(event)

    def extend(self, events) -> None:
        for e in events:
            self.append(e)

    def clear(self) -> None:
        self._events = []

    def has_errors(self) -> bool:
        return any(e.is_error for e in self._events)

    def errors(self) -> list:
        return [e for e in self._events if e.is_error]

    def snapshot(self) -> list:
        return list(self._events)

    def __iter__(self):
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)


class DiagnosticChannel:
    """
    Tag-filtered, session-scoped consumer side of the bridge.

    begin_session() invalidates every earlier session: envelopes that arrive
    late from a superseded preview are dropped instead of polluting the log.
    Tests feed envelopes straight into deliver(); the sandbox does the same
    from its Playwright binding.
    """

    def __init__(self, diagnostics: DiagnosticLog, tag: str = settings.BRIDGE_TAG):
        self.diagnostics = diagnostics
        self.tag = tag
        self._session = 0
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[DiagnosticEvent], None]] = []

    @property
    def session(self) -> int:
        return self._session

    def begin_session(self) -> int:
        with self._lock:
            self._session += 1
            return self._session

    def subscribe(self, fn: Callable[[DiagnosticEvent], None]) -> None:
        self._subscribers.append(fn)

    def deliver(self, envelope, session: Optional[int] = None) -> Optional[DiagnosticEvent]:
        """Accept one raw envelope. Returns the appended event, or None if dropped."""
        event = self.decode(envelope)
        if event is None:
            return None
        with self._lock:
            if session is not None and session != self._session:
                log.debug(f"Dropped diagnostic from stale session {session} (current {self._session})")
                return None
            self.diagnostics.append(event)
        for fn in list(self._subscribers):
            fn(event)
        return event

    def post(self, event: DiagnosticEvent) -> None:
        """Host-side event (e.g. a transpile failure): no tag, current session."""
        with self._lock:
            self.diagnostics.append(event)
        for fn in list(self._subscribers):
            fn(event)

    def decode(self, envelope) -> Optional[DiagnosticEvent]:
        if not isinstance(envelope, dict) or envelope.get("source") != self.tag:
            return None
        payload = envelope.get("payload")
        if not isinstance(payload, dict):
            log.debug("Dropped tagged message without payload")
            return None
        level = payload.get("level")
        if level not in LEVELS:
            level = "log"
        message = payload.get("message", "")
        if not isinstance(message, str):
            message = json.dumps(message, default=str)
        return DiagnosticEvent(level, message)


# ── Sandbox-side instrumentation ──────────────────────────────────────────────

_INSTRUMENTATION = """\
<script>
(function () {
  var TAG = __TAG__;
  var original = {};
  ['log', 'warn', 'error', 'info'].forEach(function (k) { original[k] = console[k]; });
  var serialize = function (arg) {
    if (arg instanceof Error) { return arg.stack || arg.message; }
    try {
      return typeof arg === 'object' && arg !== null ? JSON.stringify(arg) : String(arg);
    } catch (e) {
      return String(arg);
    }
  };
  var post = function (level, args) {
    var message = Array.prototype.map.call(args, serialize).join(' ');
    window.parent.postMessage({ source: TAG, payload: { level: level, message: message } }, '*');
  };
  ['log', 'warn', 'error', 'info'].forEach(function (level) {
    console[level] = function () {
      original[level].apply(console, arguments);
      post(level, arguments);
    };
  });
  window.onerror = function (message, source, lineno, colno, error) {
    post('error', error ? [message, error] : [message]);
    original.error(message, source, lineno, colno, error);
    return true;
  };
  window.addEventListener('unhandledrejection', function (event) {
    post('error', ['Unhandled promise rejection:', event.reason]);
    original.warn('Unhandled promise rejection:', event.reason);
  });
})();
</script>"""


def instrumentation_script(tag: str = settings.BRIDGE_TAG) -> str:
    """Self-contained <script> block; its only external effect is posting tagged messages."""
    return _INSTRUMENTATION.replace("__TAG__", json.dumps(tag))
