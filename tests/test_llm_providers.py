"""Tests for LLM providers and factory."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from promptopt.llm import (
    PROVIDERS,
    GeminiProvider,
    LLMProvider,
    Message,
    MockProvider,
    OpenAICompatibleProvider,
    RequestConfigError,
    get_provider,
    register_provider,
)
from promptopt.models import ModelConfig


def config_for(provider: str, **overrides) -> ModelConfig:
    data = {
        "name": provider,
        "base_url": "http://example.test/v1",
        "api_key": "key-123456789",
        "models": ["m-1"],
        "default_model": "m-1",
        "enabled": True,
        "provider": provider,
    }
    data.update(overrides)
    return ModelConfig(**data)


USER = [Message(role="user", content="Hello")]


class TestMockProvider:
    async def test_basic_response(self):
        provider = MockProvider(config_for("mock"))
        assert await provider.complete(USER) == "MOCKED RESPONSE"
        assert provider.calls == [USER]

    async def test_stream_splits_words(self):
        provider = MockProvider(config_for("mock"), response="one two three")
        tokens = [t async for t in provider.stream(USER)]
        assert tokens == ["one ", "two ", "three"]

    async def test_error_mid_stream(self):
        provider = MockProvider(config_for("mock"), tokens=["a", "b", "c"], error=RuntimeError("cut"), fail_after=2)
        seen = []
        with pytest.raises(RuntimeError, match="cut"):
            async for token in provider.stream(USER):
                seen.append(token)
        assert seen == ["a", "b"]

    async def test_error_on_complete(self):
        provider = MockProvider(config_for("mock"), error=RuntimeError("down"))
        with pytest.raises(RuntimeError):
            await provider.complete(USER)


class TestFactory:
    def test_get_mock_provider(self):
        assert isinstance(get_provider(config_for("mock")), MockProvider)

    @pytest.mark.parametrize("name", ["openai", "deepseek", "custom", "OpenAI"])
    def test_openai_compatible(self, name):
        assert isinstance(get_provider(config_for(name)), OpenAICompatibleProvider)

    def test_gemini(self):
        assert isinstance(get_provider(config_for("gemini")), GeminiProvider)

    def test_unknown_provider_speaks_openai_protocol(self):
        assert isinstance(get_provider(config_for("siliconflow")), OpenAICompatibleProvider)

    def test_provider_bound_to_config(self):
        config = config_for("mock")
        assert get_provider(config).config is config

    def test_register_provider(self):
        class EchoProvider(LLMProvider):
            async def complete(self, messages):
                return messages[-1].content

            async def stream(self, messages):
                yield messages[-1].content

        register_provider("Echo", EchoProvider)
        try:
            assert isinstance(get_provider(config_for("echo")), EchoProvider)
        finally:
            PROVIDERS.pop("echo", None)

    def test_register_invalid_provider(self):
        with pytest.raises(TypeError):
            register_provider("bad", str)


class TestOpenAICompatibleProvider:
    def test_request_defaults(self):
        provider = OpenAICompatibleProvider(config_for("openai"))
        kwargs = provider._request_kwargs(USER)
        assert kwargs["model"] == "m-1"
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 2000

    def test_llm_params_override_defaults(self):
        provider = OpenAICompatibleProvider(
            config_for("openai", llm_params={"temperature": 0.1, "timeout": 5000, "top_p": 0.9})
        )
        kwargs = provider._request_kwargs(USER)
        assert kwargs["temperature"] == 0.1
        assert kwargs["top_p"] == 0.9
        assert "timeout" not in kwargs
        assert provider.timeout == 5.0

    async def test_complete_uses_sdk_client(self):
        reply = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hi"))])
        with patch("promptopt.llm.providers.AsyncOpenAI") as MockOpenAI:
            MockOpenAI.return_value.chat.completions.create = AsyncMock(return_value=reply)
            provider = OpenAICompatibleProvider(config_for("deepseek"))
            assert await provider.complete(USER) == "Hi"

        MockOpenAI.assert_called_once_with(api_key="key-123456789", base_url="http://example.test/v1", timeout=60.0)
        create = MockOpenAI.return_value.chat.completions.create
        assert create.await_args.kwargs["model"] == "m-1"

    async def test_stream_skips_empty_chunks(self):
        def chunk(content):
            return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])

        async def chunks():
            for item in (chunk("Hel"), SimpleNamespace(choices=[]), chunk(None), chunk("lo")):
                yield item

        with patch("promptopt.llm.providers.AsyncOpenAI") as MockOpenAI:
            create = AsyncMock(return_value=chunks())
            MockOpenAI.return_value.chat.completions.create = create
            provider = OpenAICompatibleProvider(config_for("openai"))
            tokens = [t async for t in provider.stream(USER)]

        assert tokens == ["Hel", "lo"]
        assert create.await_args.kwargs["stream"] is True


def gemini_transport(captured, body=None, sse_events=None):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if sse_events is not None:
            text = "".join(f"data: {json.dumps(e)}\n\n" for e in sse_events)
            return httpx.Response(200, text=text, headers={"content-type": "text/event-stream"})
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)


def gemini_chunk(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestGeminiProvider:
    async def test_complete_builds_request(self):
        captured = []
        provider = GeminiProvider(
            config_for("gemini", base_url="https://gemini.test/v1beta", llm_params={"topK": 5}),
            transport=gemini_transport(captured, body=gemini_chunk("Hi there")),
        )
        messages = [
            Message(role="system", content="Be brief"),
            Message(role="user", content="Hello"),
            Message(role="assistant", content="Hey"),
            Message(role="user", content="Again"),
        ]
        try:
            assert await provider.complete(messages) == "Hi there"
        finally:
            await provider.aclose()

        request = captured[0]
        assert request.url.path == "/v1beta/models/m-1:generateContent"
        assert request.headers["x-goog-api-key"] == "key-123456789"
        payload = json.loads(request.content)
        assert payload["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
        assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
        assert payload["generationConfig"]["topK"] == 5

    async def test_stream_parses_sse(self):
        captured = []
        provider = GeminiProvider(
            config_for("gemini", base_url="https://gemini.test/v1beta"),
            transport=gemini_transport(captured, sse_events=[gemini_chunk("Hel"), gemini_chunk("lo")]),
        )
        try:
            tokens = [t async for t in provider.stream(USER)]
        finally:
            await provider.aclose()
        assert tokens == ["Hel", "lo"]
        assert captured[0].url.params["alt"] == "sse"

    async def test_last_message_must_be_user(self):
        captured = []
        provider = GeminiProvider(config_for("gemini"), transport=gemini_transport(captured, body={}))
        with pytest.raises(RequestConfigError, match="end with a user message"):
            await provider.complete([Message(role="assistant", content="Hi")])
        with pytest.raises(RequestConfigError):
            async for _ in provider.stream([Message(role="system", content="Be brief")]):
                pass
        assert captured == []

    async def test_http_error_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "bad key"}))
        provider = GeminiProvider(config_for("gemini"), transport=transport)
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await provider.complete(USER)
        finally:
            await provider.aclose()
