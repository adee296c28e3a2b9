"""
Error taxonomy shared by the extractor, assembler and model collaborators.

Runtime diagnostics coming out of the sandbox are NOT errors here; they are
plain data appended to the diagnostic log.
"""


class ForgeError(Exception):
    """Base class. `guidance` is the hint shown to the user next to the message."""
    guidance = ""

    def __init__(self, message: str, guidance: str = ""):
        super().__init__(message)
        self.message = message
        if guidance:
            self.guidance = guidance

    def user_message(self) -> str:
        return f"{self.message} {self.guidance}".strip()


# ── Extraction ────────────────────────────────────────────────────────────────

class ExtractionError(ForgeError):
    pass


class NoStructureFound(ExtractionError):
    guidance = "The model did not return a file list. Try rephrasing the prompt or another model."


class MalformedStructure(ExtractionError):
    guidance = "The model returned a file list that could not be read. Please try again."


# ── Assembly ──────────────────────────────────────────────────────────────────

class AssemblyError(ForgeError):
    pass


class NoEntryPoint(AssemblyError):
    guidance = "Ask the model to include the missing file, or switch the project type."


class TranspileFailure(AssemblyError):
    guidance = "Use 'Fix with AI' to let the model repair the component source."


# ── Model transport ───────────────────────────────────────────────────────────

class TransportFailure(ForgeError):
    guidance = "Is Ollama running?"


# ── Sandbox ───────────────────────────────────────────────────────────────────

class SandboxError(ForgeError):
    guidance = "Install the browser with: python -m playwright install chromium"
