import json

import httpx
import pytest

from app.services.ai_client import AIClient, AIServiceError


def _client(handler, **overrides):
    options = dict(
        base_url="https://ai.example.test/v1beta",
        api_key="test-key",
        model="test-model",
        mock_mode=False,
    )
    options.update(overrides)
    return AIClient(transport=httpx.MockTransport(handler), **options)


def _reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestMockMode:
    def test_mock_mode_is_deterministic(self):
        client = AIClient(mock_mode=True)
        first = client.generate("Summarise patient Baby A")
        assert first == client.generate("Summarise patient Baby A")
        assert first != client.generate("Summarise patient Baby B")
        assert "Summarise patient Baby A" in first

    def test_missing_key_falls_back_to_mock(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = _client(handler, api_key=None)
        assert client.use_mock is True
        assert client.generate("hello").startswith("[mock-ai")
        assert client.is_available() is True


class TestGenerate:
    def test_posts_generate_content_request(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_reply("Stable overnight."))

        client = _client(handler)
        text = client.generate("Summarise", system_prompt="You are a neonatologist", max_output_tokens=256)

        assert text == "Stable overnight."
        assert seen["url"].startswith("https://ai.example.test/v1beta/models/test-model:generateContent")
        assert "key=test-key" in seen["url"]
        assert seen["body"]["contents"][0]["parts"][0]["text"] == "Summarise"
        assert seen["body"]["systemInstruction"]["parts"][0]["text"] == "You are a neonatologist"
        assert seen["body"]["generationConfig"]["maxOutputTokens"] == 256

    def test_joins_multiple_parts(self):
        def handler(request):
            payload = {"candidates": [{"content": {"parts": [{"text": "Part one. "}, {"text": "Part two."}]}}]}
            return httpx.Response(200, json=payload)

        assert _client(handler).generate("x") == "Part one. Part two."

    def test_http_error_raises(self):
        client = _client(lambda request: httpx.Response(429, json={"error": "rate limited"}))
        with pytest.raises(AIServiceError, match="429"):
            client.generate("x")

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AIServiceError):
            _client(handler).generate("x")

    def test_no_retry_on_failure(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(AIServiceError):
            _client(handler).generate("x")
        assert len(calls) == 1

    def test_empty_candidates_raise(self):
        client = _client(lambda request: httpx.Response(200, json={"candidates": []}))
        with pytest.raises(AIServiceError):
            client.generate("x")

    def test_invalid_json_raises(self):
        client = _client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))
        with pytest.raises(AIServiceError):
            client.generate("x")


class TestAvailability:
    def test_available_when_model_endpoint_responds(self):
        client = _client(lambda request: httpx.Response(200, json={"name": "models/test-model"}))
        assert client.is_available() is True

    def test_unavailable_on_error(self):
        client = _client(lambda request: httpx.Response(401))
        assert client.is_available() is False
