"""Actors: asynchronous units of work invoked by states.

An actor is any object exposing

    async def invoke(self, input, context, event) -> JsonValue

Built-in actors cover HTTP requests (httpx), timers and wrapped callables.
ActorInvoker adds the uniform invocation contract on top of any actor:
dispatch-time cache lookup, per-attempt timeout, retry with exponential
backoff for retryable failures, and a single cache write on success.
"""

import asyncio
import inspect
import json
import logging
import random
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from xflows.logic import evaluate_bool
from xflows.models import (
    ActorTimeoutError,
    EvaluationError,
    HttpActorDefinition,
    InvocationError,
    RetryDefinition,
)
from xflows.templates import TemplateRenderer

if TYPE_CHECKING:
    from xflows.graph import InvokeDescriptor

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_MS = 10_000


# ============================================================================
# Retry policy
# ============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """Retry behavior for an invoke.

    Attributes:
        max: Retries allowed after the first attempt
        backoff_ms: Delay before the first retry
        multiplier: Growth factor applied per further retry
    """

    max: int = 0
    backoff_ms: float = 1000
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max < 0:
            raise ValueError("retry.max must be non-negative")
        if self.backoff_ms < 0:
            raise ValueError("retry.backoffMs must be non-negative")
        if self.multiplier <= 0:
            raise ValueError("retry.multiplier must be positive")

    def delay_for_attempt(self, attempt: int) -> float:
        """Milliseconds to wait after failed attempt number `attempt` (1-based)."""
        return self.backoff_ms * self.multiplier ** (attempt - 1)

    @classmethod
    def from_definition(
        cls, definition: RetryDefinition | None, defaults: "RetryPolicy | None" = None
    ) -> "RetryPolicy":
        base = defaults or cls()
        if not definition:
            return base
        return cls(
            max=int(definition.get("max", base.max)),
            backoff_ms=float(definition.get("backoffMs", base.backoff_ms)),
            multiplier=float(definition.get("multiplier", base.multiplier)),
        )


# ============================================================================
# Cache
# ============================================================================


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float  # Clock seconds


class ActorCache:
    """Result cache with lazy eviction on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def put(self, key: str, value: Any, ttl_ms: float) -> CacheEntry:
        entry = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl_ms / 1000)
        self._entries[key] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


# ============================================================================
# Actors
# ============================================================================


class BaseActor(ABC):
    """Base class for built-in actors."""

    name: str = "actor"

    @abstractmethod
    async def invoke(self, input: Any, context: Any, event: Any) -> Any:
        """Perform the work and return a JSON-serializable result."""


class PromiseActor(BaseActor):
    """Wraps a plain or async callable `fn(input, context, event)`."""

    def __init__(self, fn: Callable[[Any, Any, Any], Any | Awaitable[Any]], name: str = "promise"):
        self.fn = fn
        self.name = name

    async def invoke(self, input: Any, context: Any, event: Any) -> Any:
        result = self.fn(input, context, event)
        if inspect.isawaitable(result):
            result = await result
        return result


class TimerActor(BaseActor):
    """Resolves after `ms` milliseconds (from the input or the definition)."""

    name = "delay"

    def __init__(self, ms: float = 0, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.ms = ms
        self._sleep = sleep

    async def invoke(self, input: Any, context: Any, event: Any) -> Any:
        ms = input.get("ms", self.ms) if isinstance(input, dict) else self.ms
        await self._sleep(float(ms) / 1000)
        return {"delay": ms}


class RandomNumberActor(BaseActor):
    """Returns a random number in [min, max]; integers when both bounds are."""

    name = "randomNumber"

    async def invoke(self, input: Any, context: Any, event: Any) -> Any:
        bounds = input if isinstance(input, dict) else {}
        low, high = bounds.get("min", 0), bounds.get("max", 100)
        if isinstance(low, int) and isinstance(high, int):
            return random.randint(low, high)
        return random.uniform(float(low), float(high))


@dataclass(frozen=True)
class HttpRequestSpec:
    """A fully rendered request."""

    method: str
    url: str
    headers: dict[str, str]
    params: dict[str, Any]
    body: Any

    def signature(self) -> str:
        return json.dumps(
            [self.method, self.url, self.params, self.body], sort_keys=True, default=str
        )


IsErrorFn = Callable[[httpx.Response, Any], bool]

_REQUEST_KEYS = ("method", "url", "headers", "params", "body")


class HttpActor(BaseActor):
    """
    HTTP request actor.

    Every configured part of the request (method, url, headers, query params,
    body) is rendered through the Template Renderer, so context and event
    fields can parameterize it. Keys of a dict input replace the rendered
    parts without being rendered again.

    Failure classification:
    - timeouts, network errors and 5xx responses are retryable
    - 4xx responses, unexpected statuses and responses flagged by `isError`
      are not
    """

    name = "httpRequest"

    def __init__(
        self,
        config: HttpActorDefinition | None = None,
        *,
        renderer: TemplateRenderer | None = None,
        base_url: str | None = None,
        timeout_ms: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        is_error: IsErrorFn | None = None,
    ):
        self.config: HttpActorDefinition = dict(config or {})  # type: ignore[assignment]
        self.renderer = renderer or TemplateRenderer()
        self.base_url = base_url
        self.timeout_ms = float(self.config.get("timeoutMs", timeout_ms or DEFAULT_HTTP_TIMEOUT_MS))
        self.transport = transport
        self.is_error = is_error

    def build_request(self, input: Any, context: Any, event: Any) -> HttpRequestSpec:
        """
        Render the configured request and apply the input on top of it.

        Only the configured parts are templates. A dict input is data that was
        already resolved by the invoker, so its values are used as-is.

        Raises:
            InvocationError: If a template is malformed or the url is missing
        """
        try:
            rendered = self.renderer.render_value(
                {key: self.config.get(key) for key in _REQUEST_KEYS},
                context,
                event,
            )
        except EvaluationError as e:
            raise InvocationError(f"Invalid request template: {e}", actor=self.name, retryable=False) from e

        if isinstance(input, dict):
            for key in _REQUEST_KEYS:
                if key in input:
                    rendered[key] = input[key]

        url = rendered.get("url")
        if not url:
            raise InvocationError("HTTP actor has no url", actor=self.name, retryable=False)

        return HttpRequestSpec(
            method=str(rendered.get("method") or "GET").upper(),
            url=str(url),
            headers={str(k): str(v) for k, v in (rendered.get("headers") or {}).items()},
            params=dict(rendered.get("params") or {}),
            body=rendered.get("body"),
        )

    def cache_key(self, input: Any, context: Any, event: Any) -> str:
        return f"{self.name}:{self.build_request(input, context, event).signature()}"

    async def invoke(self, input: Any, context: Any, event: Any) -> Any:
        request = self.build_request(input, context, event)
        kwargs: dict[str, Any] = {"headers": request.headers, "params": request.params}
        if isinstance(request.body, (dict, list)):
            kwargs["json"] = request.body
        elif request.body is not None:
            kwargs["content"] = str(request.body)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url or "",
                timeout=self.timeout_ms / 1000,
                transport=self.transport,
            ) as client:
                response = await client.request(request.method, request.url, **kwargs)
        except httpx.TimeoutException as e:
            raise ActorTimeoutError(
                f"{request.method} {request.url} timed out", actor=self.name, timeout_ms=self.timeout_ms
            ) from e
        except httpx.HTTPError as e:
            raise InvocationError(
                f"{request.method} {request.url} failed: {e}", actor=self.name, retryable=True
            ) from e

        data = _response_data(response)
        self._check_response(request, response, data)
        return data

    def _check_response(self, request: HttpRequestSpec, response: httpx.Response, data: Any) -> None:
        status = response.status_code
        expected = self.config.get("expectStatus")
        expected_statuses = [expected] if isinstance(expected, int) else list(expected or [])

        if expected_statuses:
            ok = status in expected_statuses
        else:
            ok = response.is_success

        if not ok:
            raise InvocationError(
                f"{request.method} {request.url} returned HTTP {status}",
                actor=self.name,
                retryable=status >= 500,
                status=status,
                data=data,
            )

        if self._flags_error(response, data):
            raise InvocationError(
                f"{request.method} {request.url} returned an error payload",
                actor=self.name,
                retryable=False,
                status=status,
                data=data,
            )

    def _flags_error(self, response: httpx.Response, data: Any) -> bool:
        if self.is_error is not None:
            return bool(self.is_error(response, data))
        expression = self.config.get("isError")
        if expression is None:
            return False
        scope = {"status": response.status_code, "data": data, "headers": dict(response.headers)}
        try:
            return evaluate_bool(expression, scope)
        except EvaluationError as e:
            logger.warning(f"isError expression of {self.name} failed, treating response as ok: {e}")
            return False


def _response_data(response: httpx.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


# ============================================================================
# Invocation
# ============================================================================


@dataclass(frozen=True)
class InvocationOutcome:
    """Successful result of ActorInvoker.invoke."""

    value: Any
    attempts: int
    cached: bool = False


class ActorInvoker:
    """
    Applies the invocation contract (cache, timeout, retry) to actor calls.

    One invoker, and therefore one cache, exists per flow instance.
    """

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        cache: ActorCache | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.renderer = renderer or TemplateRenderer()
        self.cache = cache if cache is not None else ActorCache()
        self._sleep = sleep

    async def invoke(self, descriptor: "InvokeDescriptor", context: Any, event: Any) -> InvocationOutcome:
        """
        Run an invoke descriptor to completion.

        Raises:
            InvocationError: When the call fails and no retries remain
        """
        # Everything the call depends on is resolved now, at dispatch time
        actor_input = self._resolve_input(descriptor, context, event)
        cache_key = self._resolve_cache_key(descriptor, actor_input, context, event)

        if cache_key is not None:
            entry = self.cache.get(cache_key)
            if entry is not None:
                logger.debug(f"Invoke '{descriptor.id}' served from cache key '{cache_key}'")
                return InvocationOutcome(value=entry.value, attempts=0, cached=True)

        policy = descriptor.retry
        attempt = 0
        while True:
            attempt += 1
            try:
                value = await self._attempt(descriptor, actor_input, context, event)
            except InvocationError as e:
                e.attempts = attempt
                if not e.retryable or attempt > policy.max:
                    raise
                delay_ms = policy.delay_for_attempt(attempt)
                logger.warning(
                    f"Invoke '{descriptor.id}' attempt {attempt} failed ({e}); retrying in {delay_ms:.0f}ms"
                )
                await self._sleep(delay_ms / 1000)
                continue

            if cache_key is not None:
                self.cache.put(cache_key, value, descriptor.cache_ttl_ms or 0)
            return InvocationOutcome(value=value, attempts=attempt)

    async def _attempt(self, descriptor: "InvokeDescriptor", actor_input: Any, context: Any, event: Any) -> Any:
        call = descriptor.actor.invoke(actor_input, context, event)
        try:
            if descriptor.timeout_ms:
                return await asyncio.wait_for(call, timeout=descriptor.timeout_ms / 1000)
            return await call
        except InvocationError:
            raise
        except TimeoutError as e:
            raise ActorTimeoutError(
                f"Invoke '{descriptor.id}' timed out after {descriptor.timeout_ms}ms",
                actor=descriptor.src,
                timeout_ms=descriptor.timeout_ms,
            ) from e
        except Exception as e:
            raise InvocationError(
                f"Invoke '{descriptor.id}' failed: {type(e).__name__}: {e}",
                actor=descriptor.src,
                retryable=True,
            ) from e

    def _resolve_input(self, descriptor: "InvokeDescriptor", context: Any, event: Any) -> Any:
        try:
            return self.renderer.render_value(descriptor.input, context, event)
        except EvaluationError as e:
            raise InvocationError(
                f"Invalid input for invoke '{descriptor.id}': {e}", actor=descriptor.src, retryable=False
            ) from e

    def _resolve_cache_key(
        self, descriptor: "InvokeDescriptor", actor_input: Any, context: Any, event: Any
    ) -> str | None:
        if not descriptor.cache_ttl_ms:
            return None
        if descriptor.cache_key:
            key = self.renderer.render(descriptor.cache_key, context, event)
            return f"{descriptor.src}:{key}"

        key_fn = getattr(descriptor.actor, "cache_key", None)
        if callable(key_fn):
            return key_fn(actor_input, context, event)
        return f"{descriptor.src}:{json.dumps(actor_input, sort_keys=True, default=str)}"
