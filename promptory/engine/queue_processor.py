"""Queue processor — drains the request queue one request at a time.

A single worker task owns the in-flight request and its cancel event. Every
request ends as a stored response: ``completed`` and ``failed`` rows get a
content file, ``cancelled`` rows do not. Provider failures are recorded,
never raised, so one bad request cannot stop the queue.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

import httpx

from promptory.config import settings
from promptory.db import utcnow
from promptory.engine.credentials import CredentialService
from promptory.engine.errors import (
    NoActiveProviderError,
    PromptoryError,
    ProviderNotValidatedError,
    ProviderValidationError,
    RequestCancelledError,
    TokenLimitExceededError,
)
from promptory.engine.events import EventSink
from promptory.engine.llm_storage import LLMStorageService
from promptory.engine.parameters import substitute
from promptory.engine.path_safety import ensure_safe_identifier, sanitize_prompt_name
from promptory.engine.providers import GenerateOptions, GenerateResult, ProviderAdapter, adapter_for
from promptory.engine.request_queue import LLMRequest, RequestQueue
from promptory.engine.title_generation import TitleGenerationService
from promptory.engine.token_counter import TokenCounter
from promptory.schemas.events import QueueUpdatedEvent, RequestProgressEvent, ResponseCompleteEvent
from promptory.schemas.llm import CurrentRequestInfo, LLMResponseMetadata, QueueStatus
from promptory.schemas.provider import ProviderConfig

logger = logging.getLogger(__name__)


class QueueProcessor:
    def __init__(
        self,
        storage: LLMStorageService,
        credentials: CredentialService,
        events: EventSink,
        title_service: TitleGenerationService | None = None,
        token_counter: TokenCounter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._storage = storage
        self._credentials = credentials
        self._events = events
        self._title_service = title_service
        self._token_counter = token_counter or TokenCounter()
        self._transport = transport

        self._queue = RequestQueue()
        self._current: LLMRequest | None = None
        self._cancel_event: asyncio.Event | None = None
        self._worker: asyncio.Task | None = None
        self._title_tasks: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    # ── Admission ───────────────────────────────────

    async def submit(
        self,
        prompt_id: str,
        prompt_name: str,
        prompt_content: str,
        parameters: dict[str, str] | None = None,
        model: str | None = None,
    ) -> str:
        """Queue a request and return its id.

        Raises when the prompt id or name is not path-safe, when no provider
        is active, or when the prompt is over the model's token limit; nothing
        is queued in any of these cases.
        """
        if self._closed:
            raise ProviderValidationError("Queue processor has been shut down")
        ensure_safe_identifier(prompt_id, "prompt id")
        sanitize_prompt_name(prompt_name, prompt_id)
        active = await self._storage.get_active_provider_config()
        if active is None:
            raise NoActiveProviderError()

        parameters = dict(parameters or {})
        content = substitute(prompt_content, parameters)
        model = model or active.model_name or settings.default_model

        check = self._token_counter.check(content, active.provider_type, model)
        if not check.within_limit:
            raise TokenLimitExceededError(check.token_count, check.limit)

        request = LLMRequest(
            prompt_id=prompt_id,
            prompt_name=prompt_name,
            prompt_content=content,
            provider=active.provider_type,
            model=model,
            parameters=parameters,
        )
        self._queue.enqueue(request)
        logger.info(f"Queued request {request.id} for prompt {prompt_id} ({active.provider_type}/{model})")
        self._events.publish(QueueUpdatedEvent(queue_size=self._queue.size(), added_request_id=request.id))
        self._ensure_worker()
        return request.id

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._idle.clear()
            self._worker = asyncio.create_task(self._run(), name="llm-queue-worker")

    # ── Worker ──────────────────────────────────────

    async def _run(self) -> None:
        try:
            while True:
                request = self._queue.dequeue()
                if request is None:
                    break
                self._events.publish(
                    QueueUpdatedEvent(queue_size=self._queue.size(), removed_request_id=request.id)
                )
                try:
                    await self._process(request)
                except Exception:
                    logger.exception(f"Unexpected failure processing request {request.id}")
        finally:
            self._current = None
            self._cancel_event = None
            self._idle.set()

    async def _resolve_adapter(self, request: LLMRequest) -> tuple[ProviderConfig, ProviderAdapter]:
        config = await self._storage.get_provider_config_by_type(request.provider)
        if config is None:
            raise ProviderValidationError(
                f"Provider {request.provider} is no longer configured", request.provider
            )
        if config.last_validated_at is None:
            raise ProviderNotValidatedError(
                f"Provider {config.display_name} has not been validated", request.provider
            )
        return config, adapter_for(config, self._credentials, self._transport)

    async def _process(self, request: LLMRequest) -> None:
        request.status = "processing"
        request.started_at = utcnow()
        self._current = request
        self._cancel_event = asyncio.Event()
        t0 = time.perf_counter()
        self._events.publish(RequestProgressEvent(request_id=request.id, status="processing"))

        response_id = str(uuid.uuid4())
        try:
            try:
                config, adapter = await self._resolve_adapter(request)
                result = await adapter.generate(
                    request.prompt_content,
                    GenerateOptions(
                        model=request.model,
                        timeout_seconds=config.timeout_seconds,
                        cancel_event=self._cancel_event,
                    ),
                )
            except RequestCancelledError:
                logger.info(f"Request {request.id} cancelled")
                await self._record_cancelled(request, response_id, _elapsed_ms(t0))
            except PromptoryError as e:
                logger.warning(f"Request {request.id} failed ({e.code}): {e}")
                await self._record_failure(request, response_id, e.code, str(e), _elapsed_ms(t0))
            except Exception as e:
                logger.exception(f"Request {request.id} failed unexpectedly")
                await self._record_failure(request, response_id, "UNKNOWN_ERROR", str(e), _elapsed_ms(t0))
            else:
                await self._record_success(request, response_id, result, _elapsed_ms(t0))
        except Exception as e:
            # The outcome could not be stored; the UI still has to hear about it
            logger.exception(f"Could not store response for request {request.id}")
            request.status = "failed"
            self._events.publish(ResponseCompleteEvent(
                request_id=request.id,
                response_id=response_id,
                prompt_id=request.prompt_id,
                status="failed",
                error=f"Could not store response: {e}",
            ))
            self._events.publish(RequestProgressEvent(
                request_id=request.id, status="failed", elapsed_ms=_elapsed_ms(t0)
            ))
        finally:
            self._current = None
            self._cancel_event = None

    def _base_metadata(self, request: LLMRequest, response_id: str, elapsed_ms: int) -> LLMResponseMetadata:
        return LLMResponseMetadata(
            id=response_id,
            prompt_id=request.prompt_id,
            provider=request.provider,
            model=request.model,
            parameters=request.parameters,
            created_at=utcnow(),
            status="completed",
            response_time_ms=elapsed_ms,
        )

    async def _store(self, request: LLMRequest, metadata: LLMResponseMetadata, body: str | None) -> None:
        # File first, then the row that points at it
        if body is not None:
            metadata.file_path = await self._storage.save_response_content(
                request.prompt_id,
                request.prompt_name,
                metadata.id,
                body,
                metadata,
                request.prompt_content,
            )
        await self._storage.save_response_metadata(metadata)
        request.status = metadata.status
        self._events.publish(ResponseCompleteEvent(
            request_id=request.id,
            response_id=metadata.id,
            prompt_id=request.prompt_id,
            status=metadata.status,
            error=metadata.error_message,
        ))

    async def _record_success(
        self, request: LLMRequest, response_id: str, result: GenerateResult, elapsed_ms: int
    ) -> None:
        metadata = self._base_metadata(request, response_id, elapsed_ms)
        metadata.model = result.model or request.model
        metadata.token_usage = result.token_usage
        await self._store(request, metadata, result.content)
        self._events.publish(RequestProgressEvent(
            request_id=request.id, status="completed", elapsed_ms=elapsed_ms, token_usage=result.token_usage,
        ))
        logger.info(f"Request {request.id} completed in {elapsed_ms}ms ({result.token_usage.total} tokens)")

        if self._title_service is not None:
            task = asyncio.create_task(
                self._title_service.generate_title(response_id, result.content, metadata.model),
                name=f"title-{response_id}",
            )
            self._title_tasks.add(task)
            task.add_done_callback(self._title_tasks.discard)

    async def _record_failure(
        self, request: LLMRequest, response_id: str, code: str, message: str, elapsed_ms: int
    ) -> None:
        metadata = self._base_metadata(request, response_id, elapsed_ms)
        metadata.status = "failed"
        metadata.error_code = code
        metadata.error_message = message
        await self._store(request, metadata, message)
        self._events.publish(RequestProgressEvent(request_id=request.id, status="failed", elapsed_ms=elapsed_ms))

    async def _record_cancelled(self, request: LLMRequest, response_id: str, elapsed_ms: int) -> None:
        metadata = self._base_metadata(request, response_id, elapsed_ms)
        metadata.status = "cancelled"
        metadata.error_code = RequestCancelledError.code
        metadata.error_message = "Request was cancelled"
        await self._store(request, metadata, None)
        self._events.publish(RequestProgressEvent(request_id=request.id, status="cancelled", elapsed_ms=elapsed_ms))

    # ── Control ─────────────────────────────────────

    def cancel(self, request_id: str) -> bool:
        """Drop a queued request, or abort it if it is the one in flight."""
        if self._queue.remove(request_id):
            logger.info(f"Removed queued request {request_id}")
            self._events.publish(
                QueueUpdatedEvent(queue_size=self._queue.size(), removed_request_id=request_id)
            )
            return True
        if self._current is not None and self._current.id == request_id and self._cancel_event is not None:
            self._cancel_event.set()
            return True
        return False

    def cancel_all(self) -> int:
        count = self._queue.size()
        self._queue.clear()
        if self._current is not None and self._cancel_event is not None and not self._cancel_event.is_set():
            self._cancel_event.set()
            count += 1
        if count:
            logger.info(f"Cancelled {count} request(s)")
            self._events.publish(QueueUpdatedEvent(queue_size=0))
        return count

    def status(self) -> QueueStatus:
        current = None
        if self._current is not None and self._current.started_at is not None:
            started = self._current.started_at
            current = CurrentRequestInfo(
                id=self._current.id,
                prompt_id=self._current.prompt_id,
                started_at=started,
                elapsed_ms=int((utcnow() - started).total_seconds() * 1000),
            )
        return QueueStatus(queue_size=self._queue.size(), current_request=current)

    async def wait_idle(self, include_titles: bool = True) -> None:
        """Wait until the queue is drained (and, optionally, titles are done)."""
        await self._idle.wait()
        if include_titles and self._title_tasks:
            await asyncio.gather(*list(self._title_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel everything, wait for the worker, and leave no dangling state."""
        self._closed = True
        self.cancel_all()
        if self._worker is not None:
            await asyncio.gather(self._worker, return_exceptions=True)
        if self._title_tasks:
            for task in list(self._title_tasks):
                task.cancel()
            await asyncio.gather(*list(self._title_tasks), return_exceptions=True)
        await self._storage.mark_pending_as_cancelled()


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)
