#!/usr/bin/env python3
"""
Watched-folder pipeline: drop a .txt prompt into ideas/ and get a generated,
previewed and (if needed) repaired project under production-ready/<name>/.
"""
import re, sys, time, logging
from pathlib import Path

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from vibeforge import settings
from vibeforge.archive import archive_name
from vibeforge.workbench import Workbench

log = logging.getLogger("pipeline")


class IdeaFileHandler(FileSystemEventHandler):
    """
    Collects .txt paths from watchdog's thread; the main thread drains them
    through run_pipeline so every browser call stays on one thread.
    """

    def __init__(self):
        self.pending    = []
        self.processing = set()

    def on_created(self, event):  self._handle(event.src_path)
    def on_modified(self, event): self._handle(event.src_path)

    def _handle(self, path):
        p = Path(path)
        if p.suffix == ".txt" and p not in self.processing and p not in self.pending:
            self.pending.append(p)

    def drain(self, workbench: Workbench):
        while self.pending:
            p = self.pending.pop(0)
            time.sleep(0.5)   # let the writer finish
            self.processing.add(p)
            try: run_pipeline(p, workbench)
            finally: self.processing.discard(p)


def project_name(idea_file: Path) -> str:
    return re.sub(r"[^a-z0-9_]+", "_", idea_file.stem.lower()).strip("_") or "project"


def run_pipeline(idea_file: Path, workbench: Workbench, max_fix: int = settings.MAX_FIX,
                 output_dir: Path = None) -> Path:
    """Returns the project directory, or None when nothing was generated."""
    log.info("=" * 60)
    log.info("🚀 PIPELINE STARTED")
    log.info("=" * 60)
    idea = idea_file.read_text(encoding="utf-8").strip()
    if not idea:
        log.warning("Idea file is empty. Skipping.")
        return None
    log.info(f"💡 Idea: {idea[:200]}...")

    outcome = workbench.generate(idea)
    if not outcome.ok:
        log.error(f"Generation failed: {outcome.error}")
        return None

    name        = project_name(idea_file)
    project_dir = (output_dir or settings.OUTPUT_DIR) / name
    project_dir.mkdir(parents=True, exist_ok=True)

    log.info("\n🧪 Previewing in the sandbox...")
    for attempt in range(1, max_fix + 1):
        workbench.preview()
        errors = workbench.diagnostics.errors()
        if not errors:
            log.info("✅ No console errors!")
            break
        log.warning(f"⚠️  Attempt {attempt}/{max_fix} — {len(errors)} error(s):")
        for e in errors: log.warning(f"   • {e.message[:200]}")
        fixed = workbench.fix()
        if not fixed.ok:
            log.warning(f"⚠️  {fixed.error or 'Fix skipped'}. Keeping the current files.")
            break
    else:
        # Show the result of the last fix
        workbench.preview()
        if workbench.diagnostics.has_errors():
            log.warning("⚠️  Max fix attempts reached. Archiving anyway.")

    if workbench.assembly is not None:
        (project_dir / "preview.html").write_text(workbench.document, encoding="utf-8")
        workbench.sandbox.screenshot(project_dir / "preview.png")
    (project_dir / archive_name(name)).write_bytes(workbench.archive())
    write_readme(name, project_dir, idea, workbench)

    log.info("=" * 60)
    log.info(f"🎉 DONE!  {project_dir}")
    log.info("=" * 60)
    return project_dir


def write_readme(name: str, project_dir: Path, idea: str, workbench: Workbench):
    files = "\n".join(f"- `{n}`" for n in workbench.registry.names())
    (project_dir / "README.md").write_text(
        f"# {name.replace('_', ' ').title()}\n\n"
        f"## Idea\n{idea}\n\n"
        f"## Files\n{files}\n\n"
        f"Project type: `{workbench.project_type.value}`. "
        f"Open `preview.html` in a browser, or unzip `{archive_name(name)}`.\n",
        encoding="utf-8",
    )


if __name__ == "__main__":
    for d in [settings.IDEAS_DIR, settings.OUTPUT_DIR, settings.LOGS_DIR]:
        d.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(settings.LOGS_DIR / "pipeline.log"),
            logging.StreamHandler(sys.stdout)
        ]
    )

    log.info("🤖 VibeForge Pipeline")
    log.info(f"   👁️  Watching : {settings.IDEAS_DIR}")
    log.info(f"   📦 Output   : {settings.OUTPUT_DIR}")
    log.info(f"   🏗️  Model    : {settings.DEFAULT_MODEL}")
    log.info(f"   🧩 Project  : {settings.DEFAULT_PROJECT_TYPE}")
    log.info("\nDrop a .txt file into ideas/ to start!\n")

    workbench = Workbench()
    handler   = IdeaFileHandler()
    observer  = Observer()
    observer.schedule(handler, str(settings.IDEAS_DIR), recursive=False)
    observer.start()
    try:
        while True:
            handler.drain(workbench)
            time.sleep(1)
    except KeyboardInterrupt:
        log.info("Stopping...")
    finally:
        observer.stop()
        observer.join()
        workbench.close()
