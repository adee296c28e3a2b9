"""
One editing session: the File Registry, the Diagnostic Log, and the
operations that move data between them (generate, edit, preview, fix, enhance).

Both stores are mutated only under the workbench lock, so requests arriving on
server threads are applied one at a time. Model calls run outside the lock.
Every generation takes a ticket; a reply whose ticket is no longer current on
arrival is dropped.

Playwright's sync API is thread-bound: preview() and close() must always be
called from the same thread (server.py gives them a dedicated worker).
"""
import logging, threading
from typing import Optional

from vibeforge import settings
from vibeforge.archive import archive
from vibeforge.assembler import Assembly, ProjectType, assemble
from vibeforge.bridge import DiagnosticChannel, DiagnosticLog
from vibeforge.builder import BuilderAgent
from vibeforge.errors import ForgeError, SandboxError
from vibeforge.refiner import RefinerAgent
from vibeforge.registry import FileRegistry
from vibeforge.repair import Outcome, RepairLoop

log = logging.getLogger("workbench")


class Workbench:
    def __init__(self, builder: BuilderAgent = None, refiner: RefinerAgent = None,
                 transpiler=None, sandbox=None, project_type=settings.DEFAULT_PROJECT_TYPE,
                 tag: str = settings.BRIDGE_TAG):
        self.builder      = builder or BuilderAgent()
        self.refiner      = refiner or RefinerAgent()
        self.project_type = ProjectType.parse(project_type)
        self.registry     = FileRegistry()
        self.diagnostics  = DiagnosticLog()
        self.channel      = DiagnosticChannel(self.diagnostics, tag)
        self._lock        = threading.RLock()
        self._ticket      = 0
        self._generating  = 0
        self._transpiler  = transpiler
        self._sandbox     = sandbox
        self.repair       = RepairLoop(self.builder, self.registry, self.diagnostics, self._lock)
        self.assembly: Optional[Assembly] = None
        self.grounding    = None
        self.error: Optional[str] = None

    # ── Lazily-built browser collaborators ────────────────────────────────────

    @property
    def transpiler(self):
        if self._transpiler is None:
            from vibeforge.transpiler import BabelTranspiler
            self._transpiler = BabelTranspiler(browser=self.sandbox.browser)
        return self._transpiler

    @property
    def sandbox(self):
        if self._sandbox is None:
            from vibeforge.sandbox import SandboxExecutor
            self._sandbox = SandboxExecutor(self.channel)
        return self._sandbox

    @property
    def busy(self) -> bool:
        return self._generating > 0 or self.repair.running

    # ── Generation ────────────────────────────────────────────────────────────

    def generate(self, prompt: str, project_type=None, image=None, context_files=None,
                 search: bool = False) -> Outcome:
        if not prompt.strip():
            return self._fail("rejected", "Please enter a prompt.")
        with self._lock:
            if self.repair.running:
                return Outcome("busy", error="A fix is running. Wait for it to finish.")
            if project_type is not None:
                self.project_type = ProjectType.parse(project_type)
            self._ticket += 1
            ticket = self._ticket
            ptype  = self.project_type
            self._generating += 1
            self.registry.clear()
            self.diagnostics.clear()
            self.channel.begin_session()   # any running preview is now stale
            self.assembly = None
            self.grounding = None
            self.error = None

        log.info(f"💡 Generating [{ptype.value}] ticket={ticket}: {prompt[:90]}")
        try:
            result = self.builder.generate_code(
                prompt, ptype, image=image, context_files=context_files, search=search
            )
        except ForgeError as e:
            with self._lock:
                if ticket != self._ticket:
                    return Outcome("stale")
            return self._fail("failed", e.user_message())
        finally:
            with self._lock:
                self._generating -= 1

        with self._lock:
            if ticket != self._ticket:
                log.info(f"Discarding stale generation ticket={ticket} (current {self._ticket})")
                return Outcome("stale")
            self.registry.replace(result.files, keep_active=False)
            self.grounding = result.grounding
        log.info(f"✅ Generated {len(result.files)} file(s)")
        return Outcome("generated", files=result.files)

    def fix(self) -> Outcome:
        with self._lock:
            ptype = self.project_type
            self.error = None
        outcome = self.repair.request(ptype, busy=lambda: self._generating > 0)
        if outcome.status in ("failed", "busy"):
            self.error = outcome.error
        return outcome

    def enhance(self, prompt: str) -> Outcome:
        try:
            enhanced = self.refiner.enhance(prompt)
        except ForgeError as e:
            return self._fail("failed", f"Prompt Enhance Failed: {e.message}")
        return Outcome("enhanced", text=enhanced)

    # ── Direct edits ──────────────────────────────────────────────────────────

    def edit(self, file_name: str, code: str) -> bool:
        with self._lock:
            return self.registry.edit(file_name, code)

    def select(self, file_name: str) -> bool:
        with self._lock:
            return self.registry.select(file_name)

    def clear_diagnostics(self) -> None:
        with self._lock:
            self.diagnostics.clear()

    def set_project_type(self, project_type) -> None:
        with self._lock:
            self.project_type = ProjectType.parse(project_type)

    # ── Preview ───────────────────────────────────────────────────────────────

    def preview(self, run: bool = True) -> Optional[Assembly]:
        """Assemble the current files and (optionally) execute them in a fresh sandbox."""
        with self._lock:
            files  = self.registry.snapshot()
            ptype  = self.project_type
            ticket = self._ticket
            self.error = None
        if not files:
            self.assembly = None
            return None

        transpiler = None if ptype.is_static else self.transpiler
        assembly = assemble(files, ptype, transpiler=transpiler, tag=self.channel.tag)
        with self._lock:
            if ticket != self._ticket:
                log.info(f"Discarding preview of superseded generation ticket={ticket}")
                return None
            self.assembly = assembly
            for event in assembly.diagnostics:
                self.channel.post(event)
        if run:
            try:
                self.sandbox.run(assembly.document)
            except SandboxError as e:
                log.error(f"Sandbox unavailable: {e.message}")
                self.error = e.user_message()
        return assembly

    @property
    def document(self) -> str:
        return self.assembly.document if self.assembly else ""

    def archive(self) -> bytes:
        with self._lock:
            return archive(self.registry.snapshot())

    def close(self) -> None:
        close = getattr(self._transpiler, "close", None)
        if close is not None:
            close()
        if self._sandbox is not None:
            self._sandbox.close()

    # ── Internals ─────────────────────────────────────────────────────────────

    def _fail(self, status: str, message: str) -> Outcome:
        self.error = message
        log.warning(f"❌ {message}")
        return Outcome(status, error=message)
