"""Provider adapter base — shared HTTP plumbing, error mapping and the
timeout/cancellation race every backend goes through.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable

import httpx

from promptory.engine.errors import (
    AuthenticationError,
    InsufficientQuotaError,
    ModelNotFoundError,
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
    RequestCancelledError,
    UnknownProviderError,
)
from promptory.schemas.llm import TokenUsage

logger = logging.getLogger(__name__)

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0", "host.docker.internal")


@dataclass
class ValidationResult:
    valid: bool
    message: str | None = None
    error: str | None = None


@dataclass
class GenerateOptions:
    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    # None means the adapter's configured timeout
    timeout_seconds: float | None = None
    cancel_event: asyncio.Event | None = None


@dataclass
class GenerateResult:
    content: str
    model: str
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None


def _redact(text: str, secret: str | None) -> str:
    if secret and secret in text:
        return text.replace(secret, "***")
    return text


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        err = body.get("error", body)
        if isinstance(err, dict):
            return str(err.get("message") or err.get("code") or err)[:200]
        return str(err)[:200]
    return str(body)[:200]


def classify_http_error(
    response: httpx.Response,
    provider: str,
    secret: str | None = None,
) -> ProviderError:
    """Map a non-2xx response to the provider error taxonomy."""
    status = response.status_code
    detail = _redact(_error_detail(response), secret)
    if status in (401, 403):
        return AuthenticationError(f"Authentication failed: {detail}", provider)
    if status == 402:
        return InsufficientQuotaError(f"Insufficient quota: {detail}", provider)
    if status == 404:
        return ModelNotFoundError(f"Not found: {detail}", provider)
    if status == 429:
        if "quota" in detail.lower() or "quota" in response.text.lower():
            return InsufficientQuotaError(f"Insufficient quota: {detail}", provider)
        return RateLimitError(f"Rate limit exceeded: {detail}", provider)
    return UnknownProviderError(f"HTTP {status}: {detail}", provider)


async def race_deadline(
    work: Awaitable[Any],
    timeout_seconds: float,
    cancel_event: asyncio.Event | None = None,
    provider: str | None = None,
) -> Any:
    """Run ``work`` until it finishes, the deadline passes or ``cancel_event`` fires.

    On timeout or cancellation the work task is cancelled, which closes the
    underlying HTTP connection, and the matching provider error is raised.
    """
    if cancel_event is not None and cancel_event.is_set():
        if asyncio.iscoroutine(work):
            work.close()
        raise RequestCancelledError(provider)

    task = asyncio.ensure_future(work)
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Future[Any] | None = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    if cancel_waiter is not None and cancel_waiter in done:
        raise RequestCancelledError(provider)
    raise ProviderTimeoutError(timeout_seconds, provider)


class ProviderAdapter(ABC):
    """Common surface of every text-generation backend."""

    provider_type: str = ""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    # ── HTTP plumbing ───────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _make_client(self, timeout: float | None = None) -> httpx.AsyncClient:
        """Create an httpx client, bypassing proxy for local endpoints."""
        is_local = any(h in self.base_url for h in _LOCAL_HOSTS)
        return httpx.AsyncClient(
            timeout=timeout or self.timeout_seconds,
            trust_env=not is_local,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """Send a request and return the decoded JSON body."""
        try:
            async with self._make_client(timeout) as client:
                resp = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException:
            raise ProviderTimeoutError(timeout or self.timeout_seconds, self.provider_type) from None
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"Cannot connect to {self.provider_type} at {self.base_url}: {type(e).__name__}",
                self.provider_type,
            ) from None

        if resp.status_code >= 400:
            raise classify_http_error(resp, self.provider_type, self.api_key)
        try:
            return resp.json()
        except ValueError:
            raise UnknownProviderError(
                f"Invalid JSON from {self.provider_type}", self.provider_type
            ) from None

    # ── Public surface ──────────────────────────────

    async def validate(self) -> ValidationResult:
        """Connectivity and credential check; never raises for provider errors."""
        try:
            message = await self._check_connection()
        except ProviderError as e:
            logger.warning(f"{self.provider_type} validation failed: {e}")
            return ValidationResult(valid=False, error=str(e))
        return ValidationResult(valid=True, message=message)

    async def generate(self, prompt: str, options: GenerateOptions) -> GenerateResult:
        timeout = options.timeout_seconds or self.timeout_seconds
        return await race_deadline(
            self._generate(prompt, options, timeout),
            timeout,
            options.cancel_event,
            self.provider_type,
        )

    @abstractmethod
    async def list_models(self) -> list[str]: ...

    @abstractmethod
    async def _check_connection(self) -> str: ...

    @abstractmethod
    async def _generate(self, prompt: str, options: GenerateOptions, timeout: float) -> GenerateResult: ...
