import pytest

import chatrelay.adapters.openai_client as oc
from chatrelay.common.config import settings
from chatrelay.domain.errors import CompletionError
from chatrelay.domain.models import Channel, CompletionRequest


class FakeAPIError(Exception):
    pass


class FakeAPIStatusError(FakeAPIError):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class FakeRateLimitError(FakeAPIStatusError):
    def __init__(self, message="slow down"):
        super().__init__(message, 429)


class FakeAPIConnectionError(FakeAPIError):
    pass


@pytest.fixture()
def fake_sdk_errors(monkeypatch):
    monkeypatch.setattr(oc, "APIError", FakeAPIError)
    monkeypatch.setattr(oc, "APIStatusError", FakeAPIStatusError)
    monkeypatch.setattr(oc, "RateLimitError", FakeRateLimitError)
    monkeypatch.setattr(oc, "APIConnectionError", FakeAPIConnectionError)
    monkeypatch.setattr(oc.time, "sleep", lambda _s: None)


def _mk_client(monkeypatch, outcomes, *, max_attempts=2):
    """OpenAIClient whose SDK replays `outcomes` (str content or exception) per call."""
    calls = []

    class FakeOpenAI:
        def __init__(self, **kwargs):
            self.kwargs = kwargs
            self.chat = type("Chat", (), {})()
            self.chat.completions = type("Completions", (), {})()

            def create(**kwargs):
                calls.append(kwargs)
                out = outcomes[min(len(calls), len(outcomes)) - 1]
                if isinstance(out, Exception):
                    raise out
                msg = type("Msg", (), {"content": out})()
                choice = type("Choice", (), {"message": msg})()
                return type("Resp", (), {"choices": [choice]})()

            self.chat.completions.create = create

    monkeypatch.setattr(oc, "OpenAI", FakeOpenAI)
    client = oc.OpenAIClient(api_key="test-key", model="gpt-test", max_tokens=50, max_attempts=max_attempts)
    return client, calls


def _request(**overrides):
    data = dict(channel=Channel.WHATSAPP, channel_id="48123456789", prompt="hello", display_name="Jan Kowalski")
    data.update(overrides)
    return CompletionRequest(**data)


def test_system_prompt_uses_display_name():
    assert oc.system_prompt("sms", "Ana") == "As Ana chatting with the OpenAI language model via sms."
    assert oc.system_prompt("whatsapp", None) == (
        "As a user chatting with the OpenAI language model via whatsapp."
    )


def test_message_name_is_sanitized():
    assert oc.message_name("Jan Kowalski") == "Jan_Kowalski"
    assert oc.message_name("Zoë!!") == "Zo"
    assert oc.message_name("***") is None
    assert oc.message_name(None) is None
    assert len(oc.message_name("a" * 100)) == 64


def test_build_messages():
    c = oc.OpenAIClient(api_key="", model="gpt-test")
    msgs = c.build_messages(_request())

    assert msgs[0] == {
        "role": "system",
        "content": "As Jan Kowalski chatting with the OpenAI language model via whatsapp.",
    }
    assert msgs[1] == {"role": "user", "content": "hello", "name": "Jan_Kowalski"}


def test_build_messages_without_name():
    c = oc.OpenAIClient(api_key="", model="gpt-test")
    msgs = c.build_messages(_request(display_name=None))

    assert "name" not in msgs[1]


def test_disabled_client_raises(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "")
    c = oc.OpenAIClient(api_key=None, model="gpt-test")

    assert c.enabled is False
    with pytest.raises(CompletionError):
        c.complete(_request())


def test_complete_returns_raw_text(monkeypatch):
    c, calls = _mk_client(monkeypatch, ["4\n\n"])

    assert c.complete(_request(prompt="2+2?")) == "4\n\n"
    assert calls[0]["model"] == "gpt-test"
    assert calls[0]["max_tokens"] == 50
    assert calls[0]["messages"][1]["content"] == "2+2?"


def test_complete_rejects_empty_text(monkeypatch):
    c, _calls = _mk_client(monkeypatch, ["  \n"])

    with pytest.raises(CompletionError):
        c.complete(_request())


def test_retries_rate_limit_then_succeeds(monkeypatch, fake_sdk_errors):
    c, calls = _mk_client(monkeypatch, [FakeRateLimitError(), "ok"])

    assert c.complete(_request()) == "ok"
    assert len(calls) == 2


def test_non_retryable_status_fails_fast(monkeypatch, fake_sdk_errors):
    c, calls = _mk_client(monkeypatch, [FakeAPIStatusError("bad key", 401)], max_attempts=3)

    with pytest.raises(CompletionError) as e:
        c.complete(_request())
    assert "401" in str(e.value)
    assert len(calls) == 1


def test_retries_exhausted(monkeypatch, fake_sdk_errors):
    c, calls = _mk_client(monkeypatch, [FakeAPIConnectionError("timeout")], max_attempts=3)

    with pytest.raises(CompletionError) as e:
        c.complete(_request())
    assert "retries exhausted" in str(e.value)
    assert isinstance(e.value.__cause__, FakeAPIConnectionError)
    assert len(calls) == 3
