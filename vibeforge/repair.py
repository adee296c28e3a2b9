"""
Repair loop: resubmits the current files plus the observed console errors and
swaps in whatever the model sends back.

    idle ──request()──▶ repairing ──▶ idle-with-new-files
                                 └──▶ idle-with-error

A request with no files or no error-level diagnostic is a no-op. There is no
automatic retry: each attempt is triggered explicitly by the user or by a
bounded outer loop (pipeline.py).
"""
import logging, threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from vibeforge.errors import ForgeError

log = logging.getLogger("repair")


class RepairState(str, Enum):
    IDLE                = "idle"
    REPAIRING           = "repairing"
    IDLE_WITH_NEW_FILES = "idle-with-new-files"
    IDLE_WITH_ERROR     = "idle-with-error"


@dataclass
class Outcome:
    """Result of a workbench operation: generated / repaired / enhanced / skipped / busy / stale / failed."""
    status: str
    files: list = field(default_factory=list)
    error: Optional[str] = None
    text: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in ("generated", "repaired", "enhanced")


class RepairLoop:
    def __init__(self, builder, registry, diagnostics, lock: threading.RLock = None):
        self.builder     = builder
        self.registry    = registry
        self.diagnostics = diagnostics
        self.lock        = lock or threading.RLock()
        self.state       = RepairState.IDLE

    @property
    def running(self) -> bool:
        return self.state == RepairState.REPAIRING

    def can_repair(self) -> bool:
        return bool(self.registry) and self.diagnostics.has_errors()

    def request(self, project_type, busy: Callable[[], bool] = lambda: False) -> Outcome:
        with self.lock:
            if self.running or busy():
                return Outcome("busy", error="A generation or fix is already running.")
            if not self.can_repair():
                log.info("Fix requested without files or errors, nothing to do")
                return Outcome("skipped")
            # Frozen payload: later edits or diagnostics do not leak into this request.
            files  = self.registry.snapshot()
            errors = [e.message for e in self.diagnostics.errors()]
            self.state = RepairState.REPAIRING

        log.info(f"🔧 Fixing {len(files)} file(s) against {len(errors)} error(s)")
        try:
            result = self.builder.fix_code(files, errors, project_type)
        except ForgeError as e:
            log.warning(f"Fix failed: {e.message}")
            return Outcome("failed", error=f"AI Fix Failed: {e.user_message()}")
        else:
            with self.lock:
                self.registry.replace(result.files)
                self.diagnostics.clear()
                self.state = RepairState.IDLE_WITH_NEW_FILES
        finally:
            with self.lock:
                if self.state is RepairState.REPAIRING:
                    self.state = RepairState.IDLE_WITH_ERROR
        log.info(f"✅ Fix applied: {len(result.files)} file(s)")
        return Outcome("repaired", files=result.files)
