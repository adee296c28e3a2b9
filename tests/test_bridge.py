"""Diagnostic channel and log tests."""

from __future__ import annotations

import re

from vibeforge.bridge import (
    DiagnosticChannel,
    DiagnosticEvent,
    DiagnosticLog,
    error_event,
    instrumentation_script,
)

TAG = "vibeforge-sandbox-log"


def envelope(level: str, message, tag: str = TAG) -> dict:
    return {"source": tag, "payload": {"level": level, "message": message}}


def test_tagged_messages_are_appended_in_receipt_order() -> None:
    diagnostics = DiagnosticLog()
    channel = DiagnosticChannel(diagnostics, TAG)
    channel.deliver(envelope("log", "one"))
    channel.deliver(envelope("error", "two"))
    channel.deliver(envelope("warn", "one"))
    assert [(e.level, e.message) for e in diagnostics] == [
        ("log", "one"), ("error", "two"), ("warn", "one"),
    ]


def test_untagged_and_foreign_messages_are_dropped() -> None:
    diagnostics = DiagnosticLog()
    channel = DiagnosticChannel(diagnostics, TAG)
    assert channel.deliver(envelope("error", "x", tag="some-extension")) is None
    assert channel.deliver({"payload": {"level": "error", "message": "x"}}) is None
    assert channel.deliver("hello from a widget") is None
    assert channel.deliver({"source": TAG}) is None
    assert channel.deliver(None) is None
    assert len(diagnostics) == 0


def test_stale_sessions_are_dropped() -> None:
    diagnostics = DiagnosticLog()
    channel = DiagnosticChannel(diagnostics, TAG)
    old = channel.begin_session()
    new = channel.begin_session()
    assert new > old
    assert channel.deliver(envelope("error", "late"), session=old) is None
    assert channel.deliver(envelope("error", "fresh"), session=new) is not None
    assert [e.message for e in diagnostics] == ["fresh"]


def test_unknown_level_and_non_string_message_are_normalised() -> None:
    diagnostics = DiagnosticLog()
    event = DiagnosticChannel(diagnostics, TAG).deliver(envelope("debug", {"n": 1}))
    assert event.level == "log"
    assert event.message == '{"n": 1}'
    assert re.fullmatch(r"\d\d:\d\d:\d\d", event.timestamp)


def test_subscribers_see_accepted_events_only() -> None:
    seen = []
    channel = DiagnosticChannel(DiagnosticLog(), TAG)
    channel.subscribe(seen.append)
    channel.deliver(envelope("info", "kept"))
    channel.deliver(envelope("info", "dropped", tag="other"))
    channel.post(error_event("host side"))
    assert [e.message for e in seen] == ["kept", "host side"]


def test_log_errors_and_clear() -> None:
    diagnostics = DiagnosticLog()
    diagnostics.extend([DiagnosticEvent("log", "a"), error_event("b"), DiagnosticEvent("warn", "c")])
    assert diagnostics.has_errors()
    assert [e.message for e in diagnostics.errors()] == ["b"]
    snapshot = diagnostics.snapshot()
    diagnostics.clear()
    assert len(diagnostics) == 0
    assert not diagnostics.has_errors()
    assert len(snapshot) == 3


def test_instrumentation_script_carries_the_tag() -> None:
    script = instrumentation_script("my-tag")
    assert script.startswith("<script>") and script.endswith("</script>")
    assert 'var TAG = "my-tag";' in script
    for hook in ("console[level]", "window.onerror", "unhandledrejection", "window.parent.postMessage"):
        assert hook in script
