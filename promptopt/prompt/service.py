"""
Prompt Service

Runs one LLM call per flow and records the result in history:
optimize starts a chain, iterate extends one, test only runs the prompt.
Every failure is wrapped in the flow's error type. There is no retry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from promptopt.config import DEFAULT_MAX_INPUT_CHARS
from promptopt.history.manager import HistoryManager
from promptopt.history.models import PromptChain, PromptRecord
from promptopt.llm.base import Message, StreamHandlers
from promptopt.llm.errors import ERROR_MESSAGES
from promptopt.llm.service import LLMService
from promptopt.models.manager import ModelManager
from promptopt.templates.manager import TemplateManager
from promptopt.templates.processor import process_template

from .errors import IterationError, OptimizationError, ServiceDependencyError, TestError

logger = logging.getLogger("promptopt.prompt")

DEFAULT_OPTIMIZE_TEMPLATE = "general-optimize"
DEFAULT_ITERATE_TEMPLATE = "iterate"


class _StreamCollector:
    """Accumulates streamed text and forwards tokens to the caller."""

    def __init__(self, handlers: StreamHandlers):
        self.handlers = handlers
        self.parts: List[str] = []
        self.completed = False

    def on_token(self, token: str) -> None:
        self.parts.append(token)
        self.handlers.on_token(token)

    def on_complete(self) -> None:
        # The caller is notified only after the record is persisted
        self.completed = True

    def on_error(self, error: Exception) -> None:
        # Reported to the caller once, after wrapping
        pass

    @property
    def text(self) -> str:
        return "".join(self.parts)


class PromptService:
    """Orchestrates optimize, iterate and test flows."""

    def __init__(
        self,
        model_manager: ModelManager,
        llm_service: LLMService,
        template_manager: TemplateManager,
        history_manager: HistoryManager,
        max_input_chars: int = DEFAULT_MAX_INPUT_CHARS,
    ):
        dependencies = {
            "ModelManager": model_manager,
            "LLMService": llm_service,
            "TemplateManager": template_manager,
            "HistoryManager": history_manager,
        }
        for name, service in dependencies.items():
            if service is None:
                raise ServiceDependencyError(f"{name} is not initialized", name)

        self.model_manager = model_manager
        self.llm_service = llm_service
        self.template_manager = template_manager
        self.history_manager = history_manager
        self.max_input_chars = max_input_chars

    # -- validation --------------------------------------------------------

    def _check_text(self, text: str) -> None:
        if not text or not text.strip():
            raise ValueError(ERROR_MESSAGES["EMPTY_INPUT"])
        if len(text) > self.max_input_chars:
            raise ValueError(
                f"{ERROR_MESSAGES['INPUT_TOO_LONG']} ({len(text)} > {self.max_input_chars} characters)"
            )

    async def _validate_input(self, model_key: str, *texts: str) -> None:
        for text in texts:
            self._check_text(text)
        if not model_key or not model_key.strip():
            raise ValueError(ERROR_MESSAGES["MODEL_KEY_REQUIRED"])
        if await self.model_manager.get_model(model_key) is None:
            raise ValueError(f"{ERROR_MESSAGES['MODEL_NOT_FOUND']}: {model_key}")

    @staticmethod
    def _validate_response(text: str) -> None:
        if not text or not text.strip():
            raise ValueError(ERROR_MESSAGES["EMPTY_RESPONSE"])

    # -- message building --------------------------------------------------

    def _optimize_messages(self, prompt: str, template_id: str) -> List[Message]:
        template = self.template_manager.get_template(template_id)
        return process_template(template, {"original_prompt": prompt})

    def _iterate_messages(self, chain: PromptChain, iterate_input: str, template_id: str) -> List[Message]:
        template = self.template_manager.get_template(template_id)
        return process_template(
            template,
            {
                "original_prompt": chain.root_record.original_prompt,
                "last_optimized_prompt": chain.current_record.optimized_prompt,
                "iterate_input": iterate_input,
            },
        )

    @staticmethod
    def _test_messages(prompt: str, test_input: str) -> List[Message]:
        return [Message(role="system", content=prompt), Message(role="user", content=test_input)]

    # -- persistence -------------------------------------------------------

    async def _save_optimization(
        self, prompt: str, result: str, model_key: str, template_id: str, metadata: Optional[Dict[str, Any]]
    ) -> PromptChain:
        return await self.history_manager.create_new_chain(
            {
                "original_prompt": prompt,
                "optimized_prompt": result,
                "model_key": model_key,
                "template_id": template_id,
                "metadata": metadata or {},
            }
        )

    async def _save_iteration(
        self,
        chain: PromptChain,
        iterate_input: str,
        result: str,
        model_key: str,
        template_id: str,
        metadata: Optional[Dict[str, Any]],
    ) -> PromptChain:
        return await self.history_manager.add_iteration(
            chain_id=chain.chain_id,
            original_prompt=chain.root_record.original_prompt,
            optimized_prompt=result,
            model_key=model_key,
            template_id=template_id,
            iteration_note=iterate_input,
            metadata=metadata,
        )

    async def _stream_and_persist(
        self,
        messages: List[Message],
        model_key: str,
        handlers: StreamHandlers,
        cancel_event: Optional[asyncio.Event],
        persist: Callable[[str], Awaitable[Any]],
    ) -> Tuple[bool, Optional[Any]]:
        # Returns (completed, result); the caller fires on_complete itself
        collector = _StreamCollector(handlers)
        await self.llm_service.send_message_stream(messages, model_key, collector, cancel_event)
        if not collector.completed:
            logger.info("Stream for %s cancelled before completion; nothing saved", model_key)
            return False, None
        self._validate_response(collector.text)
        return True, await persist(collector.text)

    # -- optimize ----------------------------------------------------------

    async def optimize_prompt(
        self,
        prompt: str,
        model_key: str,
        template_id: str = DEFAULT_OPTIMIZE_TEMPLATE,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PromptChain:
        """
        Optimize a prompt and start a new chain with the result.

        Raises:
            OptimizationError: Any failure, with the cause attached
        """
        try:
            await self._validate_input(model_key, prompt)
            messages = self._optimize_messages(prompt, template_id)
            result = await self.llm_service.send_message(messages, model_key)
            self._validate_response(result)
            return await self._save_optimization(prompt, result, model_key, template_id, metadata)
        except Exception as exc:
            raise OptimizationError(f"{ERROR_MESSAGES['OPTIMIZATION_FAILED']}: {exc}", prompt) from exc

    async def optimize_prompt_stream(
        self,
        prompt: str,
        model_key: str,
        handlers: StreamHandlers,
        template_id: str = DEFAULT_OPTIMIZE_TEMPLATE,
        metadata: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[PromptChain]:
        """
        Streaming variant of optimize_prompt.

        Tokens go to ``handlers.on_token``; ``on_complete`` fires after the
        chain is saved. On failure ``on_error`` fires once with the wrapped
        error, which is then raised. An exception from ``on_complete``
        itself propagates unwrapped; the chain stays saved.

        Returns:
            The new chain, or None when cancelled before completion.
        """
        try:
            await self._validate_input(model_key, prompt)
            messages = self._optimize_messages(prompt, template_id)
            completed, chain = await self._stream_and_persist(
                messages,
                model_key,
                handlers,
                cancel_event,
                lambda text: self._save_optimization(prompt, text, model_key, template_id, metadata),
            )
        except Exception as exc:
            error = OptimizationError(f"{ERROR_MESSAGES['OPTIMIZATION_FAILED']}: {exc}", prompt)
            handlers.on_error(error)
            raise error from exc
        if completed:
            handlers.on_complete()
        return chain

    # -- iterate -----------------------------------------------------------

    async def iterate_prompt(
        self,
        chain_id: str,
        iterate_input: str,
        model_key: str,
        template_id: str = DEFAULT_ITERATE_TEMPLATE,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PromptChain:
        """
        Refine the chain's current prompt and append the result as a new version.

        Raises:
            IterationError: Any failure, including an unknown chain
        """
        last_prompt = ""
        try:
            chain = await self.history_manager.get_chain(chain_id)
            last_prompt = chain.current_record.optimized_prompt
            await self._validate_input(model_key, iterate_input)
            messages = self._iterate_messages(chain, iterate_input, template_id)
            result = await self.llm_service.send_message(messages, model_key)
            self._validate_response(result)
            return await self._save_iteration(chain, iterate_input, result, model_key, template_id, metadata)
        except Exception as exc:
            raise IterationError(
                f"{ERROR_MESSAGES['ITERATION_FAILED']}: {exc}", last_prompt, iterate_input
            ) from exc

    async def iterate_prompt_stream(
        self,
        chain_id: str,
        iterate_input: str,
        model_key: str,
        handlers: StreamHandlers,
        template_id: str = DEFAULT_ITERATE_TEMPLATE,
        metadata: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[PromptChain]:
        """Streaming variant of iterate_prompt. Returns None when cancelled."""
        last_prompt = ""
        try:
            chain = await self.history_manager.get_chain(chain_id)
            last_prompt = chain.current_record.optimized_prompt
            await self._validate_input(model_key, iterate_input)
            messages = self._iterate_messages(chain, iterate_input, template_id)
            completed, updated = await self._stream_and_persist(
                messages,
                model_key,
                handlers,
                cancel_event,
                lambda text: self._save_iteration(chain, iterate_input, text, model_key, template_id, metadata),
            )
        except Exception as exc:
            error = IterationError(f"{ERROR_MESSAGES['ITERATION_FAILED']}: {exc}", last_prompt, iterate_input)
            handlers.on_error(error)
            raise error from exc
        if completed:
            handlers.on_complete()
        return updated

    # -- test --------------------------------------------------------------

    async def test_prompt(self, prompt: str, test_input: str, model_key: str) -> str:
        """Run ``prompt`` as the system message against ``test_input``. Nothing is saved."""
        try:
            await self._validate_input(model_key, prompt, test_input)
            return await self.llm_service.send_message(self._test_messages(prompt, test_input), model_key)
        except Exception as exc:
            raise TestError(f"{ERROR_MESSAGES['TEST_FAILED']}: {exc}", prompt, test_input) from exc

    async def test_prompt_stream(
        self,
        prompt: str,
        test_input: str,
        model_key: str,
        handlers: StreamHandlers,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[str]:
        """
        Streaming variant of test_prompt.

        Returns:
            The full response text, or None when cancelled.
        """

        async def passthrough(text: str) -> str:
            return text

        try:
            await self._validate_input(model_key, prompt, test_input)
            completed, text = await self._stream_and_persist(
                self._test_messages(prompt, test_input), model_key, handlers, cancel_event, passthrough
            )
        except Exception as exc:
            error = TestError(f"{ERROR_MESSAGES['TEST_FAILED']}: {exc}", prompt, test_input)
            handlers.on_error(error)
            raise error from exc
        if completed:
            handlers.on_complete()
        return text

    # -- history -----------------------------------------------------------

    async def get_history(self) -> List[PromptRecord]:
        return await self.history_manager.get_records()

    async def get_iteration_chain(self, record_id: str) -> List[PromptRecord]:
        return await self.history_manager.get_iteration_chain(record_id)


__all__ = ["PromptService", "DEFAULT_OPTIMIZE_TEMPLATE", "DEFAULT_ITERATE_TEMPLATE"]
