import logging, re

import requests

from vibeforge import prompts, settings
from vibeforge.errors import TransportFailure

log = logging.getLogger("refiner")


class RefinerAgent:
    """Rewrites a short idea into a richer prompt. Pure passthrough to the model."""

    def __init__(self, ollama_url: str = settings.OLLAMA_URL, model: str = settings.ENHANCE_MODEL,
                 timeout: int = 90, session: requests.Session = None):
        self.url     = f"{ollama_url}/api/chat"
        self.model   = model
        self.timeout = timeout
        self.http    = session or requests.Session()

    def enhance(self, prompt: str) -> str:
        if not prompt.strip():
            return prompt
        log.info(f"Enhancing prompt with {self.model}...")
        try:
            resp = self.http.post(self.url, json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": prompts.ENHANCE_SYSTEM_PROMPT},
                    {"role": "user",   "content": prompt},
                ],
                "stream": False,
                "options": {"temperature": 0.8, "num_predict": 800},
            }, timeout=self.timeout)
            resp.raise_for_status()
            content = resp.json()["message"]["content"].strip()
        except (requests.RequestException, KeyError, ValueError) as e:
            log.warning(f"Prompt enhance failed ({e})")
            raise TransportFailure(f"Failed to enhance prompt. {e}") from e

        # Strip markdown fences if the model ignored the instructions
        if content.startswith("```"):
            m = re.search(r"```[\w-]*\s*([\s\S]*?)```", content)
            content = m.group(1).strip() if m else content.strip("`").strip()
        return content or prompt
