import logging
from typing import Optional

from vibeforge.extractor import FileRecord

log = logging.getLogger("registry")


class FileRegistry:
    """
    Ordered, in-memory collection of generated files plus the active-file selection.

    Only two writers exist: replace() after a successful parse, and edit() for
    direct user edits. Duplicate names from the model are kept for display;
    an edit applies to every record with that name.
    """

    def __init__(self, files=None):
        self._files: list[FileRecord] = []
        self.active: Optional[str] = None
        if files:
            self.replace(files)

    # ── Writers ───────────────────────────────────────────────────────────────

    def replace(self, files, keep_active: bool = True) -> None:
        previous = self.active if keep_active else None
        self._files = [FileRecord(f.file_name, f.language, f.code) for f in files]
        names = self.names()
        if previous in names:
            self.active = previous
        else:
            self.active = names[0] if names else None
        log.info(f"Registry replaced: {len(self._files)} file(s), active={self.active}")

    def edit(self, file_name: str, code: str) -> bool:
        touched = False
        for f in self._files:
            if f.file_name == file_name:
                f.code = code
                touched = True
        if not touched:
            log.warning(f"Edit ignored, no file named {file_name!r}")
        return touched

    def clear(self) -> None:
        self._files = []
        self.active = None

    def select(self, file_name: str) -> bool:
        if file_name in self.names():
            self.active = file_name
            return True
        return False

    # ── Readers ───────────────────────────────────────────────────────────────

    def get(self, file_name: str) -> Optional[FileRecord]:
        for f in reversed(self._files):
            if f.file_name == file_name:
                return f
        return None

    def names(self) -> list:
        return [f.file_name for f in self._files]

    def snapshot(self) -> list:
        """Detached copy, safe to hand to another thread or the model."""
        return [FileRecord(f.file_name, f.language, f.code) for f in self._files]

    def to_dicts(self) -> list:
        return [f.to_dict() for f in self._files]

    def __iter__(self):
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._files)

    def __bool__(self) -> bool:
        return bool(self._files)
