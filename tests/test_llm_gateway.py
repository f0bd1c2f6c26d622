import pytest
import requests

import llm_gateway
from errors import AIGatewayError


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


@pytest.fixture
def captured(monkeypatch):
    calls = []
    state = {"response": FakeResponse(payload={"choices": [{"message": {"content": "Model answer"}}]})}

    def fake_post(url, headers=None, json=None):
        calls.append({"url": url, "headers": headers, "json": json})
        return state["response"]

    monkeypatch.setenv("AI_GATEWAY_API_KEY", "test-key")
    monkeypatch.setattr(llm_gateway.requests, "post", fake_post)
    return calls, state


def test_sends_fixed_chat_completion_request(captured, monkeypatch):
    calls, _ = captured
    monkeypatch.setenv("AI_GATEWAY_URL", "https://gateway.test/v1/chat/completions")

    assert llm_gateway.chat_completion("system text", "user text") == "Model answer"

    call = calls[0]
    assert call["url"] == "https://gateway.test/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer test-key"
    assert call["json"]["model"] == "google/gemini-2.5-flash"
    assert call["json"]["temperature"] == 0.7
    assert call["json"]["max_tokens"] == 2000
    assert call["json"]["messages"] == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "user text"},
    ]


def test_missing_api_key(monkeypatch, captured):
    calls, _ = captured
    monkeypatch.delenv("AI_GATEWAY_API_KEY")

    with pytest.raises(AIGatewayError, match="not configured"):
        llm_gateway.chat_completion("system", "user")
    assert calls == []


def test_non_2xx_raises_with_status(captured):
    _, state = captured
    state["response"] = FakeResponse(status_code=429, text="rate limited")

    with pytest.raises(AIGatewayError, match="AI Gateway error: 429"):
        llm_gateway.chat_completion("system", "user")


def test_empty_choices_give_empty_text(captured):
    _, state = captured
    state["response"] = FakeResponse(payload={"choices": []})
    assert llm_gateway.chat_completion("system", "user") == ""


@pytest.mark.parametrize("error", [
    requests.ConnectionError("connection refused"),
    requests.Timeout("read timed out"),
])
def test_network_failure_becomes_gateway_error(monkeypatch, error):
    def failing_post(url, headers=None, json=None):
        raise error

    monkeypatch.setenv("AI_GATEWAY_API_KEY", "test-key")
    monkeypatch.setattr(llm_gateway.requests, "post", failing_post)

    with pytest.raises(AIGatewayError, match=f"AI Gateway request failed: {error}"):
        llm_gateway.chat_completion("system", "user")


class HtmlResponse(FakeResponse):
    def json(self):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


def test_non_json_reply_becomes_gateway_error(captured):
    _, state = captured
    state["response"] = HtmlResponse(text="<html>maintenance</html>")

    with pytest.raises(AIGatewayError, match="invalid response"):
        llm_gateway.chat_completion("system", "user")
