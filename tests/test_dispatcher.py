from dataclasses import replace
from types import SimpleNamespace

import pytest
import requests

from friction_router.core.exceptions import ConfigurationError, EmptyResponse, ProviderError
from friction_router.llm import client as client_module
from friction_router.llm.client import Provider, ProviderDispatcher
from friction_router.llm.prompts import SOURCES_SYSTEM_PROMPT
from friction_router.models.chat import ChatMessage

CONVERSATION = [
    ChatMessage(role="user", content="a"),
    ChatMessage(role="user", content="b"),
    ChatMessage(role="assistant", content="c"),
    ChatMessage(role="user", content="d"),
]


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def keyed_settings(settings):
    return replace(
        settings,
        openai_api_key="sk-openai",
        xai_api_key="xai",
        perplexity_api_key="pplx",
        anthropic_api_key="sk-ant",
        gemini_api_key="gem",
        groq_api_key="gsk",
        provider_timeout_seconds=12,
    )


def chat_completion(text, **extra):
    return {"choices": [{"message": {"role": "assistant", "content": text}}], **extra}


def test_unknown_provider_rejected(keyed_settings):
    with pytest.raises(ValueError):
        ProviderDispatcher(keyed_settings, session=FakeSession()).send("mistral", CONVERSATION)


def test_gpt_sends_conversation_unchanged(keyed_settings):
    session = FakeSession(FakeResponse(200, chat_completion("  hello  ")))
    text = ProviderDispatcher(keyed_settings, session=session).send("gpt", CONVERSATION)
    assert text == "hello"
    sent = session.posts[0]
    assert sent["url"] == "https://api.openai.com/v1/chat/completions"
    assert sent["headers"]["Authorization"] == "Bearer sk-openai"
    assert sent["timeout"] == 12
    assert [m["content"] for m in sent["json"]["messages"]] == ["a", "b", "c", "d"]
    assert sent["json"]["temperature"] == keyed_settings.llm_temperature


def test_perplexity_merges_turns_and_appends_citations(keyed_settings):
    payload = chat_completion("The answer.", citations=["https://one.example", "https://two.example"])
    session = FakeSession(FakeResponse(200, payload))
    text = ProviderDispatcher(keyed_settings, session=session).send("perplexity", CONVERSATION)

    sent = session.posts[0]["json"]
    assert sent["messages"][0] == {"role": "system", "content": SOURCES_SYSTEM_PROMPT}
    assert sent["messages"][1:] == [
        {"role": "user", "content": "a\n\nb"},
        {"role": "assistant", "content": "c"},
        {"role": "user", "content": "d"},
    ]
    assert "temperature" not in sent
    assert text.endswith("Sources:\n[1] https://one.example\n[2] https://two.example")


def test_perplexity_search_results_fallback(keyed_settings):
    payload = chat_completion("Answer.", search_results=[{"url": "https://sr.example"}, "junk"])
    session = FakeSession(FakeResponse(200, payload))
    text = ProviderDispatcher(keyed_settings, session=session).send("perplexity", CONVERSATION)
    assert text == "Answer.\n\nSources:\n[1] https://sr.example"


def test_claude_joins_text_blocks(keyed_settings):
    payload = {"content": [{"type": "text", "text": "Hel"}, {"type": "tool_use"}, {"type": "text", "text": "lo"}]}
    session = FakeSession(FakeResponse(200, payload))
    assert ProviderDispatcher(keyed_settings, session=session).send("claude", CONVERSATION) == "Hello"
    headers = session.posts[0]["headers"]
    assert headers["x-api-key"] == "sk-ant"
    assert headers["anthropic-version"] == "2023-06-01"


def test_claude_empty_content_is_empty_response(keyed_settings):
    session = FakeSession(FakeResponse(200, {"content": [], "stop_reason": "refusal"}))
    with pytest.raises(EmptyResponse):
        ProviderDispatcher(keyed_settings, session=session).send("claude", CONVERSATION)


def test_upstream_error_status(keyed_settings):
    session = FakeSession(FakeResponse(503, {"error": {"message": "overloaded"}}))
    with pytest.raises(ProviderError) as excinfo:
        ProviderDispatcher(keyed_settings, session=session).send("grok", CONVERSATION)
    assert excinfo.value.http_status == 503
    assert excinfo.value.retryable is True
    assert excinfo.value.details == "overloaded"


def test_client_error_not_retryable(keyed_settings):
    session = FakeSession(FakeResponse(400, {"error": "bad request"}))
    with pytest.raises(ProviderError) as excinfo:
        ProviderDispatcher(keyed_settings, session=session).send("gpt", CONVERSATION)
    assert excinfo.value.retryable is False


def test_timeout_is_retryable_provider_error(keyed_settings):
    session = FakeSession(error=requests.Timeout("slow"))
    with pytest.raises(ProviderError) as excinfo:
        ProviderDispatcher(keyed_settings, session=session).send("gpt", CONVERSATION)
    assert excinfo.value.retryable is True
    assert len(session.posts) == 1


def test_missing_key_fails_before_network(settings):
    session = FakeSession()
    with pytest.raises(ConfigurationError):
        ProviderDispatcher(settings, session=session).send("gpt", CONVERSATION)
    assert session.posts == []


def test_returned_text_never_contains_provider_json(keyed_settings):
    session = FakeSession(FakeResponse(200, chat_completion([{"type": "text", "text": "plain"}])))
    text = ProviderDispatcher(keyed_settings, session=session).send("gpt", CONVERSATION)
    assert text == "plain"


class FakeGeminiModel:
    instances = []

    def __init__(self, model_name):
        self.model_name = model_name
        self.calls = []
        self.reply = SimpleNamespace(text="gemini says hi", prompt_feedback=None)
        FakeGeminiModel.instances.append(self)

    def generate_content(self, contents, generation_config=None, request_options=None):
        self.calls.append((contents, generation_config, request_options))
        return self.reply


@pytest.fixture
def fake_gemini(monkeypatch):
    FakeGeminiModel.instances = []
    monkeypatch.setattr(client_module.genai, "configure", lambda api_key: None)
    monkeypatch.setattr(client_module.genai, "GenerativeModel", FakeGeminiModel)
    return FakeGeminiModel


def test_gemini_maps_roles(keyed_settings, fake_gemini):
    text = ProviderDispatcher(keyed_settings, session=FakeSession()).send("gemini", CONVERSATION)
    assert text == "gemini says hi"
    contents, _, options = fake_gemini.instances[0].calls[0]
    assert [c["role"] for c in contents] == ["user", "user", "model", "user"]
    assert options == {"timeout": 12}


def test_generate_structured_attaches_image(keyed_settings, fake_gemini):
    dispatcher = ProviderDispatcher(keyed_settings, session=FakeSession())
    dispatcher.generate_structured("extract", image_bytes=b"\x89PNG", mime_type="image/png")
    contents, _, _ = fake_gemini.instances[0].calls[0]
    assert contents[0]["parts"] == ["extract", {"mime_type": "image/png", "data": b"\x89PNG"}]


def test_llama_uses_groq_without_retries(keyed_settings, monkeypatch):
    created = {}

    class FakeGroq:
        def __init__(self, api_key, timeout, max_retries):
            created.update(api_key=api_key, timeout=timeout, max_retries=max_retries)
            self.chat = SimpleNamespace(completions=SimpleNamespace(create=self.create))

        def create(self, **kwargs):
            created["request"] = kwargs
            message = SimpleNamespace(content=" llama reply ")
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    monkeypatch.setattr(client_module, "Groq", FakeGroq)
    text = ProviderDispatcher(keyed_settings, session=FakeSession()).send(Provider.LLAMA.value, CONVERSATION)
    assert text == "llama reply"
    assert created["max_retries"] == 0
    assert created["request"]["model"] == keyed_settings.llama_model


def test_dispatcher_is_shared_until_closed(monkeypatch):
    closed = []

    class TrackingSession(FakeSession):
        def close(self):
            closed.append(self)

    monkeypatch.setattr(client_module.requests, "Session", TrackingSession)
    client_module.close_dispatcher()

    first = client_module.get_dispatcher()
    assert client_module.get_dispatcher() is first

    client_module.close_dispatcher()
    assert closed == [first.session]
    assert client_module.get_dispatcher() is not first
    client_module.close_dispatcher()
