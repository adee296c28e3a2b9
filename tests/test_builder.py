"""Ollama chat client tests (requests session faked)."""

from __future__ import annotations

import json

import pytest
import requests

from tests._fakes import FakeResponse, FakeSession, rec, stream_lines
from vibeforge import builder as builder_module
from vibeforge.builder import SEARCH_TOOLS, BuilderAgent, ImageFile
from vibeforge.errors import MalformedStructure, TransportFailure

FILES = json.dumps([{"fileName": "index.html", "language": "html", "code": "<p>hi</p>"}])


def make_agent(*responses) -> tuple[BuilderAgent, FakeSession]:
    session = FakeSession(*responses)
    return BuilderAgent("http://ollama:11434", "test-model", timeout=5, session=session), session


def test_generate_code_streams_and_parses() -> None:
    agent, session = make_agent(FakeResponse(stream_lines(f"```json\n{FILES}\n```")))
    result = agent.generate_code("a greeting page", "html-css-js")

    assert [f.file_name for f in result.files] == ["index.html"]
    assert result.grounding is None
    call = session.calls[0]
    assert call["url"] == "http://ollama:11434/api/chat"
    assert call["stream"] is True
    payload = call["json"]
    assert payload["model"] == "test-model"
    assert payload["stream"] is True
    assert payload["options"]["temperature"] == 0.7
    assert "tools" not in payload
    system, user = payload["messages"]
    assert system["role"] == "system" and "html-css-js" in system["content"]
    assert user == {"role": "user", "content": "a greeting page"}


def test_tokens_are_forwarded_to_the_stream_callback(monkeypatch) -> None:
    tokens = []
    monkeypatch.setattr(builder_module, "_stream_callback", tokens.append)
    agent, _ = make_agent(FakeResponse(stream_lines(FILES, chunk=10)))
    agent.generate_code("x", "react")

    assert tokens[0] == "\x00START:generate code"
    assert tokens[-1] == "\x00END"
    assert "".join(tokens[1:-1]) == FILES


def test_image_and_search_are_passed_through() -> None:
    calls = [{"function": {"name": "web_search", "arguments": {"query": "cats"}}}]
    agent, session = make_agent(FakeResponse(stream_lines(FILES, tool_calls=calls)))
    image = ImageFile(base64="aGVsbG8=", mime_type="image/png", name="mock.png")
    result = agent.generate_code("like this", "html-css-js", image=image, search=True)

    payload = session.calls[0]["json"]
    user = payload["messages"][-1]
    assert user["images"] == ["aGVsbG8="]
    assert user["content"].startswith("like this")
    assert "visual reference" in user["content"]
    assert payload["tools"] == SEARCH_TOOLS
    assert result.grounding == calls


def test_context_files_are_prefixed_to_the_prompt() -> None:
    agent, session = make_agent(FakeResponse(stream_lines(FILES)))
    agent.generate_code("make it blue", "html-css-js",
                        context_files=[rec("old.css", "css", "p { color: red; }")])
    content = session.calls[0]["json"]["messages"][-1]["content"]
    assert "--- START FILE: old.css ---\np { color: red; }\n--- END FILE: old.css ---" in content
    assert content.endswith("**USER REQUEST:**\nmake it blue")


def test_fix_code_sends_files_and_errors() -> None:
    agent, session = make_agent(FakeResponse(stream_lines(FILES)))
    result = agent.fix_code([rec("index.html", "html", "<p>")], ["ReferenceError: x"], "html-css-js")

    assert result.files[0].code == "<p>hi</p>"
    payload = session.calls[0]["json"]
    assert payload["options"]["temperature"] == 0.5
    prompt = payload["messages"][-1]["content"]
    assert '"fileName": "index.html"' in prompt
    assert "ReferenceError: x" in prompt
    assert "'html-css-js'" in prompt


def test_connection_error_becomes_transport_failure() -> None:
    agent, _ = make_agent(requests.ConnectionError("refused"))
    with pytest.raises(TransportFailure) as info:
        agent.generate_code("x", "html-css-js")
    assert info.value.message.startswith("Failed to generate code.")
    assert isinstance(info.value.__cause__, requests.ConnectionError)


def test_http_error_becomes_transport_failure() -> None:
    agent, _ = make_agent(FakeResponse(status=500))
    with pytest.raises(TransportFailure):
        agent.fix_code([], ["e"], "react")


def test_error_chunk_becomes_transport_failure() -> None:
    agent, _ = make_agent(FakeResponse([json.dumps({"error": "model not found"})]))
    with pytest.raises(TransportFailure) as info:
        agent.generate_code("x", "html-css-js")
    assert "model not found" in info.value.message


def test_unparseable_reply_raises_extraction_error() -> None:
    agent, _ = make_agent(FakeResponse(stream_lines("```json\n[{oops\n```")))
    with pytest.raises(MalformedStructure):
        agent.generate_code("x", "html-css-js")


def test_generate_returns_plain_text() -> None:
    agent, session = make_agent(FakeResponse(stream_lines("just text")))
    assert agent.generate(["hello", "world"]) == "just text"
    assert session.calls[0]["json"]["messages"] == [{"role": "user", "content": "hello\nworld"}]


def test_stream_lines_that_are_not_chat_chunks_are_skipped() -> None:
    lines = stream_lines(FILES, chunk=12)
    odd = ["[1, 2]", "42", '"text"', "null", json.dumps({"message": "hi"}),
           json.dumps({"message": {"content": 7, "tool_calls": "web_search"}})]
    agent, _ = make_agent(FakeResponse(odd[:3] + lines[:2] + odd[3:] + lines[2:]))

    result = agent.generate_code("x", "html-css-js")

    assert [f.file_name for f in result.files] == ["index.html"]
    assert result.grounding is None
