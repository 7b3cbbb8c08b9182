from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx
from openai import AsyncOpenAI

from promptopt.models.types import ModelConfig

from .base import LLMProvider, Message
from .errors import RequestConfigError

logger = logging.getLogger("promptopt.llm")

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TIMEOUT = 60.0  # seconds


class MockProvider(LLMProvider):
    """
    Deterministic mock provider for testing.
    Can be scripted with tokens, a fixed response or a failure.
    """

    def __init__(
        self,
        config: ModelConfig,
        tokens: Optional[Sequence[str]] = None,
        response: Optional[str] = None,
        error: Optional[Exception] = None,
        fail_after: Optional[int] = None,
        delay: float = 0.0,
    ):
        """
        Args:
            tokens: Chunks to stream. Defaults to the response split on words.
            response: Full response text. Defaults to "MOCKED RESPONSE".
            error: Exception to raise. With fail_after, raised mid-stream.
            fail_after: Number of tokens yielded before ``error`` is raised.
            delay: Seconds to sleep before each token.
        """
        super().__init__(config)
        if tokens is None:
            text = response if response is not None else "MOCKED RESPONSE"
            tokens = re.findall(r"\S+\s*", text)
        self.tokens = list(tokens)
        self.error = error
        self.fail_after = fail_after
        self.delay = delay
        self.calls: List[List[Message]] = []

    async def complete(self, messages: List[Message]) -> str:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return "".join(self.tokens)

    async def stream(self, messages: List[Message]) -> AsyncIterator[str]:
        self.calls.append(list(messages))
        if self.error is not None and not self.fail_after:
            raise self.error
        for index, token in enumerate(self.tokens):
            if self.error is not None and index == self.fail_after:
                raise self.error
            if self.delay:
                await asyncio.sleep(self.delay)
            yield token


class OpenAICompatibleProvider(LLMProvider):
    """
    Provider for OpenAI and any OpenAI-compatible endpoint (DeepSeek, custom).
    Uses the official SDK's async client.
    """

    def __init__(self, config: ModelConfig):
        super().__init__(config)
        params = dict(config.llm_params)
        timeout_ms = params.pop("timeout", None)
        self.timeout = timeout_ms / 1000 if timeout_ms else DEFAULT_TIMEOUT
        self.params = params
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url or None,
                timeout=self.timeout,
            )
        return self._client

    def _request_kwargs(self, messages: List[Message]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.config.default_model,
            "messages": [m.model_dump() for m in messages],
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": DEFAULT_MAX_TOKENS,
        }
        kwargs.update(self.params)
        return kwargs

    async def complete(self, messages: List[Message]) -> str:
        response = await self.client.chat.completions.create(**self._request_kwargs(messages))
        return response.choices[0].message.content or ""

    async def stream(self, messages: List[Message]) -> AsyncIterator[str]:
        stream = await self.client.chat.completions.create(
            **self._request_kwargs(messages), stream=True
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class GeminiProvider(LLMProvider):
    """
    Provider for the Google Generative Language REST API.
    System messages become the system instruction; assistant turns map to "model".
    """

    GENERATION_PARAMS = ("temperature", "maxOutputTokens", "topP", "topK", "candidateCount", "stopSequences")

    def __init__(self, config: ModelConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(config)
        self.base_url = (config.base_url or "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=DEFAULT_TIMEOUT)
        return self._client

    def _payload(self, messages: List[Message]) -> Dict[str, Any]:
        system = "\n".join(m.content for m in messages if m.role == "system")
        conversation = [m for m in messages if m.role != "system"]
        if not conversation or conversation[-1].role != "user":
            raise RequestConfigError("Gemini requests must end with a user message")

        generation_config: Dict[str, Any] = {
            "maxOutputTokens": DEFAULT_MAX_TOKENS,
            "temperature": DEFAULT_TEMPERATURE,
            "topK": 40,
            "topP": 0.95,
        }
        for name in self.GENERATION_PARAMS:
            if name in self.config.llm_params:
                generation_config[name] = self.config.llm_params[name]

        payload: Dict[str, Any] = {
            "contents": [
                {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
                for m in conversation
            ],
            "generationConfig": generation_config,
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    def _url(self, method: str) -> str:
        return f"{self.base_url}/models/{self.config.default_model}:{method}"

    @property
    def _headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.config.api_key or "", "Content-Type": "application/json"}

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    async def complete(self, messages: List[Message]) -> str:
        payload = self._payload(messages)
        resp = await self.client.post(self._url("generateContent"), json=payload, headers=self._headers)
        resp.raise_for_status()
        return self._extract_text(resp.json())

    async def stream(self, messages: List[Message]) -> AsyncIterator[str]:
        payload = self._payload(messages)
        url = self._url("streamGenerateContent")
        async with self.client.stream(
            "POST", url, params={"alt": "sse"}, json=payload, headers=self._headers
        ) as resp:
            resp.raise_for_status()
            async for line in resp.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if not data:
                    continue
                try:
                    text = self._extract_text(json.loads(data))
                except json.JSONDecodeError:
                    logger.warning("Skipping unparsable Gemini stream event: %s", data[:80])
                    continue
                if text:
                    yield text

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
