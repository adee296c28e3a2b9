"""Watched-folder pipeline tests (fake model and sandbox)."""

from __future__ import annotations

import zipfile
from pathlib import Path

from pipeline import IdeaFileHandler, project_name, run_pipeline
from tests._fakes import FakeBuilder, FakeRefiner, FakeSandbox, rec
from vibeforge.bridge import error_event
from vibeforge.workbench import Workbench


class ErrorsUntilFixedSandbox(FakeSandbox):
    """Reports a console error for every document that still contains BUG."""

    def __init__(self):
        super().__init__()
        self.channel = None

    def run(self, document, settle_ms=None):
        session = super().run(document, settle_ms)
        if "BUG" in document:
            self.channel.post(error_event("ReferenceError: BUG is not defined"))
        return session


def make_bench(generated, fixed=()) -> Workbench:
    sandbox = ErrorsUntilFixedSandbox()
    bench = Workbench(builder=FakeBuilder(generated, list(fixed)), refiner=FakeRefiner(),
                      sandbox=sandbox, project_type="html-css-js")
    sandbox.channel = bench.channel
    return bench


def buggy() -> list:
    return [rec("index.html", "html", "<html><head></head><body></body></html>"),
            rec("app.js", "javascript", "BUG()")]


def fixed() -> list:
    return [rec("index.html", "html", "<html><head></head><body></body></html>"),
            rec("app.js", "javascript", "ok()")]


def test_project_name() -> None:
    assert project_name(Path("My Todo App.txt")) == "my_todo_app"
    assert project_name(Path("!!!.txt")) == "project"


def test_pipeline_repairs_then_writes_outputs(tmp_path: Path) -> None:
    idea = tmp_path / "Todo List.txt"
    idea.write_text("a todo list", encoding="utf-8")
    bench = make_bench([buggy()], [fixed()])

    project_dir = run_pipeline(idea, bench, max_fix=2, output_dir=tmp_path / "out")

    assert project_dir == tmp_path / "out" / "todo_list"
    assert len(bench.builder.fix_calls) == 1
    assert len(bench.sandbox.documents) == 2
    assert not bench.diagnostics.has_errors()
    assert "ok()" in (project_dir / "preview.html").read_text(encoding="utf-8")
    with zipfile.ZipFile(project_dir / "todo-list.zip") as zf:
        assert zf.read("app.js").decode() == "ok()"
    readme = (project_dir / "README.md").read_text(encoding="utf-8")
    assert "a todo list" in readme and "`app.js`" in readme


def test_pipeline_stops_after_max_fix_attempts(tmp_path: Path) -> None:
    idea = tmp_path / "broken.txt"
    idea.write_text("something", encoding="utf-8")
    bench = make_bench([buggy()], [buggy(), buggy()])

    project_dir = run_pipeline(idea, bench, max_fix=2, output_dir=tmp_path)

    assert len(bench.builder.fix_calls) == 2
    assert len(bench.sandbox.documents) == 3
    assert bench.diagnostics.has_errors()
    assert (project_dir / "broken.zip").exists()


def test_empty_idea_is_skipped(tmp_path: Path) -> None:
    idea = tmp_path / "empty.txt"
    idea.write_text("  \n", encoding="utf-8")
    bench = make_bench([])
    assert run_pipeline(idea, bench, output_dir=tmp_path) is None
    assert bench.builder.generate_calls == []


def test_failed_generation_writes_nothing(tmp_path: Path) -> None:
    from vibeforge.errors import TransportFailure

    idea = tmp_path / "idea.txt"
    idea.write_text("x", encoding="utf-8")
    bench = make_bench([TransportFailure("Failed to generate code. refused")])
    assert run_pipeline(idea, bench, output_dir=tmp_path / "out") is None
    assert not (tmp_path / "out").exists()


def test_handler_queues_txt_files_once(tmp_path: Path) -> None:
    class Event:
        def __init__(self, path):
            self.src_path = str(path)

    handler = IdeaFileHandler()
    handler.on_created(Event(tmp_path / "a.txt"))
    handler.on_modified(Event(tmp_path / "a.txt"))
    handler.on_created(Event(tmp_path / "b.md"))
    assert handler.pending == [tmp_path / "a.txt"]
