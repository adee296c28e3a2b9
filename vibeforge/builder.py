import json, logging
from dataclasses import dataclass, field
from typing import Optional

import requests

from vibeforge import prompts, settings
from vibeforge.errors import TransportFailure
from vibeforge.extractor import parse_files

log = logging.getLogger("builder")

_stream_callback = None
def set_stream_callback(fn):
    global _stream_callback
    _stream_callback = fn

def _emit(token):
    if _stream_callback:
        _stream_callback(token)


# Opaque capability passed through to the model when search is enabled.
SEARCH_TOOLS = [{
    "type": "function",
    "function": {
        "name": "web_search",
        "description": "Search the web for up-to-date information and image URLs.",
        "parameters": {
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"],
        },
    },
}]


@dataclass
class ImageFile:
    base64: str
    mime_type: str
    name: str = "image"


@dataclass
class GenerationResult:
    files: list
    grounding: Optional[list] = None


@dataclass
class ChatReply:
    text: str
    tool_calls: list = field(default_factory=list)


class BuilderAgent:
    """
    Ollama /api/chat client plus the two model-backed operations of the
    workbench: generate a project, and fix a project given console errors.
    Tokens are streamed to the registered stream callback as they arrive.
    """

    def __init__(self, ollama_url: str = settings.OLLAMA_URL, model: str = settings.DEFAULT_MODEL,
                 timeout: int = settings.REQUEST_TIMEOUT, session: requests.Session = None):
        self.url     = f"{ollama_url}/api/chat"
        self.model   = model
        self.timeout = timeout
        self.http    = session or requests.Session()

    # ── Public API ────────────────────────────────────────────────────────────

    def generate_code(self, prompt: str, project_type, image: ImageFile = None,
                      context_files=None, search: bool = False) -> GenerationResult:
        """Raises TransportFailure or ExtractionError."""
        parts = [prompts.with_context(prompt, context_files or [])]
        if image is not None:
            parts.insert(0, image)
            parts.append(prompts.IMAGE_HINT)
        reply = self.chat(
            parts,
            system=prompts.system_instruction(project_type, search),
            tools=SEARCH_TOOLS if search else None,
            temperature=0.7,
            label="generate code",
        )
        files = parse_files(reply.text.strip())
        return GenerationResult(files=files, grounding=reply.tool_calls or None)

    def fix_code(self, files, error_messages, project_type) -> GenerationResult:
        reply = self.chat(
            [prompts.fix_prompt(files, error_messages, project_type)],
            system=prompts.FIX_SYSTEM_PROMPT,
            temperature=0.5,
            label="fix code",
        )
        return GenerationResult(files=parse_files(reply.text.strip()))

    def generate(self, parts, tools=None) -> str:
        """Collaborator interface: prompt parts (+ optional tools) → response text."""
        return self.chat(parts, tools=tools).text

    # ── LLM call ──────────────────────────────────────────────────────────────

    def chat(self, parts, system: str = None, tools=None, temperature: float = 0.7,
             label: str = "generate a response") -> ChatReply:
        """Stream one chat completion, forward tokens to the UI, return the full text."""
        payload = {
            "model":    self.model,
            "messages": self._messages(parts, system),
            "stream":   True,
            "options":  {"temperature": temperature, "num_predict": 16384},
        }
        if tools:
            payload["tools"] = tools

        _emit(f"\x00START:{label}")
        full, tool_calls = "", []
        try:
            resp = self.http.post(self.url, json=payload, stream=True, timeout=self.timeout)
            resp.raise_for_status()
            for line in resp.iter_lines():
                if not line:
                    continue
                try:
                    chunk = json.loads(line)
                except json.JSONDecodeError:
                    log.debug(f"Skipping non-JSON stream line: {line[:80]!r}")
                    continue
                if not isinstance(chunk, dict):
                    log.debug(f"Skipping non-object stream line: {line[:80]!r}")
                    continue
                if chunk.get("error"):
                    raise TransportFailure(f"Failed to {label}. {chunk['error']}")
                msg = chunk.get("message")
                if not isinstance(msg, dict):
                    msg = {}
                tok = msg.get("content")
                if tok and isinstance(tok, str):
                    full += tok
                    _emit(tok)
                calls = msg.get("tool_calls")
                if isinstance(calls, list):
                    tool_calls.extend(calls)
                if chunk.get("done"):
                    break
        except requests.RequestException as e:
            log.error(f"   LLM {label} failed: {e}")
            raise TransportFailure(f"Failed to {label}. {e}") from e
        finally:
            _emit("\x00END")

        log.info(f"   {label}: {len(full)} chars from {self.model}")
        return ChatReply(text=full, tool_calls=tool_calls)

    @staticmethod
    def _messages(parts, system: str = None) -> list:
        texts  = [p for p in parts if isinstance(p, str)]
        images = [p.base64 for p in parts if isinstance(p, ImageFile)]
        user   = {"role": "user", "content": "\n".join(texts)}
        if images:
            user["images"] = images
        messages = [{"role": "system", "content": system}] if system else []
        messages.append(user)
        return messages
