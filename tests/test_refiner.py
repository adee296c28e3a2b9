"""Prompt enhancement tests."""

from __future__ import annotations

import pytest
import requests

from tests._fakes import FakeResponse, FakeSession
from vibeforge.errors import TransportFailure
from vibeforge.refiner import RefinerAgent


def reply(content: str) -> FakeResponse:
    return FakeResponse(body={"message": {"role": "assistant", "content": content}})


def test_enhance_returns_model_text() -> None:
    session = FakeSession(reply("  A dark-themed todo app with drag and drop.  "))
    agent = RefinerAgent("http://ollama:11434", "enhancer", session=session)
    assert agent.enhance("todo app") == "A dark-themed todo app with drag and drop."
    payload = session.calls[0]["json"]
    assert payload["model"] == "enhancer"
    assert payload["stream"] is False
    assert payload["messages"][-1] == {"role": "user", "content": "todo app"}


def test_blank_prompt_is_returned_unchanged() -> None:
    session = FakeSession()
    assert RefinerAgent(session=session).enhance("   ") == "   "
    assert session.calls == []


def test_markdown_fences_are_stripped() -> None:
    agent = RefinerAgent(session=FakeSession(reply("```text\nA better prompt\n```")))
    assert agent.enhance("x") == "A better prompt"


def test_empty_reply_falls_back_to_prompt() -> None:
    agent = RefinerAgent(session=FakeSession(reply("")))
    assert agent.enhance("keep me") == "keep me"


@pytest.mark.parametrize("response", [
    requests.Timeout("slow"),
    FakeResponse(status=503),
    FakeResponse(body={"unexpected": True}),
])
def test_failures_become_transport_failure(response) -> None:
    agent = RefinerAgent(session=FakeSession(response))
    with pytest.raises(TransportFailure) as info:
        agent.enhance("x")
    assert info.value.message.startswith("Failed to enhance prompt.")
