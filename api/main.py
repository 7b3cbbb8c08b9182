from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Literal, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from promptopt import get_build_info
from promptopt.compare import CompareValidationError, compare_texts
from promptopt.config import Settings, configure_logging, get_settings
from promptopt.history import (
    ChainNotFoundError,
    HistoryNotInitializedError,
    RecordNotFoundError,
    RecordValidationError,
    StorageError,
)
from promptopt.llm.base import StreamCallbacks, StreamHandlers
from promptopt.llm.errors import LLMError
from promptopt.prompt import PromptError
from promptopt.prompt.service import DEFAULT_ITERATE_TEMPLATE, DEFAULT_OPTIMIZE_TEMPLATE
from promptopt.services import Services, build_services
from promptopt.storage.base import StorageProviderError
from promptopt.templates import TemplateError, TemplateNotFoundError

logger = logging.getLogger("promptopt.api")


class OptimizeRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    prompt: str
    model_key: str
    template_id: str = DEFAULT_OPTIMIZE_TEMPLATE
    metadata: Dict[str, Any] = Field(default_factory=dict)
    stream: bool = Field(default=False, description="Stream tokens as server-sent events")


class IterateRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    chain_id: str
    iterate_input: str
    model_key: str
    template_id: str = DEFAULT_ITERATE_TEMPLATE
    metadata: Dict[str, Any] = Field(default_factory=dict)
    stream: bool = False


class TestPromptRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    prompt: str
    test_input: str
    model_key: str
    stream: bool = False


class TestPromptResponse(BaseModel):
    result: str


class CompareRequest(BaseModel):
    original: str
    optimized: str
    granularity: Literal["word", "char"] = "word"
    ignore_whitespace: bool = False
    case_sensitive: bool = True


# Exception type -> HTTP status, checked along the __cause__ chain
_STATUS_BY_ERROR = (
    ((RecordNotFoundError, ChainNotFoundError, TemplateNotFoundError), 404),
    ((RecordValidationError, TemplateError, CompareValidationError, ValueError), 422),
    ((StorageError, StorageProviderError, HistoryNotInitializedError), 503),
    ((LLMError,), 502),
)


def status_for(exc: BaseException) -> int:
    """Map an error, or the first mapped error it was raised from, to a status code."""
    current: Optional[BaseException] = exc
    while current is not None:
        for types, status in _STATUS_BY_ERROR:
            if isinstance(current, types):
                return status
        current = current.__cause__
    return 500


def to_http(exc: Exception) -> HTTPException:
    status = status_for(exc)
    if status >= 500:
        logger.error("Request failed: %s", exc)
    return HTTPException(status_code=status, detail=str(exc))


def _sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


async def event_stream(
    run: Callable[[StreamHandlers, asyncio.Event], Awaitable[Any]],
    serialize: Callable[[Any], Any],
) -> AsyncIterator[str]:
    """
    Run a streaming flow and relay it as server-sent events.

    Emits ``token`` events while the model streams, then either one
    ``complete`` event carrying the serialized result or one ``error``
    event. A client disconnect cancels the flow.
    """
    queue: asyncio.Queue = asyncio.Queue()
    cancel_event = asyncio.Event()
    handlers = StreamCallbacks(on_token=lambda token: queue.put_nowait(("token", {"token": token})))

    async def worker() -> None:
        try:
            result = await run(handlers, cancel_event)
            if result is not None:
                queue.put_nowait(("complete", serialize(result)))
        except PromptError as exc:
            logger.warning("Streaming request failed: %s", exc)
            queue.put_nowait(("error", {"detail": str(exc), "status": status_for(exc)}))
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(worker())
    try:
        while True:
            item = await queue.get()
            if item is None:
                break
            yield _sse(*item)
    finally:
        cancel_event.set()
        await task


def _sse_response(body: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(body, media_type="text/event-stream", headers={"Cache-Control": "no-cache"})


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json")


router = APIRouter()


def _services(request: Request) -> Services:
    return request.app.state.services


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/version")
async def version():
    """Return running package version (for debugging / client caching)."""
    return get_build_info()


# -- prompt flows -----------------------------------------------------------


@router.post("/optimize")
async def optimize(req: OptimizeRequest, request: Request):
    """Optimize a prompt and start a new chain. Returns the chain."""
    prompts = _services(request).prompts
    if req.stream:
        return _sse_response(
            event_stream(
                lambda handlers, cancel: prompts.optimize_prompt_stream(
                    req.prompt,
                    req.model_key,
                    handlers,
                    template_id=req.template_id,
                    metadata=req.metadata,
                    cancel_event=cancel,
                ),
                _dump,
            )
        )
    try:
        chain = await prompts.optimize_prompt(
            req.prompt, req.model_key, template_id=req.template_id, metadata=req.metadata
        )
    except PromptError as exc:
        raise to_http(exc) from exc
    return _dump(chain)


@router.post("/iterate")
async def iterate(req: IterateRequest, request: Request):
    """Refine the current version of a chain. Returns the extended chain."""
    prompts = _services(request).prompts
    if req.stream:
        return _sse_response(
            event_stream(
                lambda handlers, cancel: prompts.iterate_prompt_stream(
                    req.chain_id,
                    req.iterate_input,
                    req.model_key,
                    handlers,
                    template_id=req.template_id,
                    metadata=req.metadata,
                    cancel_event=cancel,
                ),
                _dump,
            )
        )
    try:
        chain = await prompts.iterate_prompt(
            req.chain_id,
            req.iterate_input,
            req.model_key,
            template_id=req.template_id,
            metadata=req.metadata,
        )
    except PromptError as exc:
        raise to_http(exc) from exc
    return _dump(chain)


@router.post("/test")
async def test_prompt(req: TestPromptRequest, request: Request):
    prompts = _services(request).prompts
    if req.stream:
        return _sse_response(
            event_stream(
                lambda handlers, cancel: prompts.test_prompt_stream(
                    req.prompt, req.test_input, req.model_key, handlers, cancel_event=cancel
                ),
                lambda text: {"result": text},
            )
        )
    try:
        result = await prompts.test_prompt(req.prompt, req.test_input, req.model_key)
    except PromptError as exc:
        raise to_http(exc) from exc
    return TestPromptResponse(result=result)


# -- history ----------------------------------------------------------------


@router.get("/history")
async def list_history(request: Request, q: Optional[str] = None, limit: Optional[int] = None):
    """Records newest first, optionally filtered by a case-insensitive query."""
    history = _services(request).history
    try:
        if q:
            records = await history.search(q, limit=limit)
        else:
            records = await history.get_records()
            if limit is not None:
                records = records[:limit]
    except (StorageError, HistoryNotInitializedError) as exc:
        raise to_http(exc) from exc
    return [_dump(r) for r in records]


@router.delete("/history")
async def clear_history(request: Request):
    try:
        await _services(request).history.clear_history()
    except StorageError as exc:
        raise to_http(exc) from exc
    return {"status": "cleared"}


@router.get("/history/{record_id}")
async def get_record(record_id: str, request: Request):
    try:
        record = await _services(request).history.get_record(record_id)
    except (RecordNotFoundError, StorageError) as exc:
        raise to_http(exc) from exc
    return _dump(record)


@router.delete("/history/{record_id}")
async def delete_record(record_id: str, request: Request):
    try:
        await _services(request).history.delete_record(record_id)
    except (RecordNotFoundError, StorageError) as exc:
        raise to_http(exc) from exc
    return {"deleted": record_id}


@router.get("/history/{record_id}/lineage")
async def record_lineage(record_id: str, request: Request):
    """The previous_id path ending at this record, oldest first."""
    try:
        records = await _services(request).history.get_iteration_chain(record_id)
    except StorageError as exc:
        raise to_http(exc) from exc
    if not records:
        raise HTTPException(status_code=404, detail=f"Record not found: {record_id}")
    return [_dump(r) for r in records]


@router.get("/chains")
async def list_chains(request: Request):
    try:
        chains = await _services(request).history.get_all_chains()
    except StorageError as exc:
        raise to_http(exc) from exc
    return [_dump(c) for c in chains]


@router.get("/chains/{chain_id}")
async def get_chain(chain_id: str, request: Request):
    try:
        chain = await _services(request).history.get_chain(chain_id)
    except (ChainNotFoundError, StorageError) as exc:
        raise to_http(exc) from exc
    return _dump(chain)


@router.delete("/chains/{chain_id}")
async def delete_chain(chain_id: str, request: Request):
    try:
        removed = await _services(request).history.delete_chain(chain_id)
    except (ChainNotFoundError, StorageError) as exc:
        raise to_http(exc) from exc
    return {"deleted": removed}


# -- models, templates, compare ---------------------------------------------


@router.get("/models")
async def list_models(request: Request, enabled: bool = False):
    """Model configs with API keys masked."""
    models = _services(request).models
    pairs = await (models.get_enabled_models() if enabled else models.get_all_models())
    return [{"key": key, **config.masked().model_dump(mode="json")} for key, config in pairs]


@router.get("/templates")
async def list_templates(request: Request, template_type: Optional[str] = Query(None, alias="type")):
    templates = _services(request).templates
    items = templates.list_templates_by_type(template_type) if template_type else templates.list_templates()
    return [_dump(t) for t in items]


@router.get("/templates/{template_id}")
async def get_template(template_id: str, request: Request):
    try:
        template = _services(request).templates.get_template(template_id)
    except TemplateNotFoundError as exc:
        raise to_http(exc) from exc
    return _dump(template)


@router.post("/compare")
async def compare(req: CompareRequest):
    """Word- or character-level diff between two prompt versions."""
    try:
        result = compare_texts(
            req.original,
            req.optimized,
            granularity=req.granularity,
            ignore_whitespace=req.ignore_whitespace,
            case_sensitive=req.case_sensitive,
        )
    except CompareValidationError as exc:
        raise to_http(exc) from exc
    return result.to_dict()


def create_app(
    settings: Optional[Settings] = None,
    services_factory: Optional[Callable[[Settings], Awaitable[Services]]] = None,
) -> FastAPI:
    """
    Build the API application.

    Services are constructed on startup by ``services_factory`` (defaults
    to build_services) and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or get_settings()
        configure_logging(resolved.log_level)
        factory = services_factory or build_services
        app.state.services = await factory(resolved)
        try:
            yield
        finally:
            await app.state.services.aclose()

    app = FastAPI(title="Prompt Optimizer API", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
