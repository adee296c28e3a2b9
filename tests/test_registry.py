"""File registry behaviour tests."""

from __future__ import annotations

from tests._fakes import rec
from vibeforge.registry import FileRegistry


def test_replace_selects_first_file_and_copies_records(static_files) -> None:
    reg = FileRegistry()
    reg.replace(static_files)
    assert reg.names() == ["index.html", "style.css", "app.js"]
    assert reg.active == "index.html"

    static_files[0].code = "mutated"
    assert reg.get("index.html").code != "mutated"


def test_replace_keeps_active_file_when_still_present(static_files) -> None:
    reg = FileRegistry(static_files)
    reg.select("app.js")
    reg.replace([rec("index.html", "html", ""), rec("app.js", "js", "")])
    assert reg.active == "app.js"

    reg.replace([rec("main.html", "html", "")])
    assert reg.active == "main.html"


def test_replace_without_keep_active_resets_selection(static_files) -> None:
    reg = FileRegistry(static_files)
    reg.select("style.css")
    reg.replace(static_files, keep_active=False)
    assert reg.active == "index.html"


def test_edit_touches_only_named_records() -> None:
    reg = FileRegistry([
        rec("a.js", "js", "1"),
        rec("b.js", "js", "2"),
        rec("a.js", "js", "3"),
    ])
    assert reg.edit("a.js", "new")
    assert [f.code for f in reg] == ["new", "2", "new"]


def test_edit_unknown_file_is_ignored(static_files) -> None:
    reg = FileRegistry(static_files)
    before = reg.to_dicts()
    assert reg.edit("missing.js", "x") is False
    assert reg.to_dicts() == before


def test_select_unknown_file_keeps_selection(static_files) -> None:
    reg = FileRegistry(static_files)
    assert reg.select("nope.css") is False
    assert reg.active == "index.html"


def test_clear_and_truthiness(static_files) -> None:
    reg = FileRegistry(static_files)
    assert reg and len(reg) == 3
    reg.clear()
    assert not reg
    assert reg.active is None
    assert reg.snapshot() == []


def test_to_dicts_uses_wire_keys(static_files) -> None:
    reg = FileRegistry(static_files[:1])
    assert reg.to_dicts() == [{
        "fileName": "index.html",
        "language": "html",
        "code": static_files[0].code,
    }]
