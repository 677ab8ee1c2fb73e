"""Priority-ordered resolution of a value through cache and collaborators.

A request usually tries the cache first and only then falls back to the
slower collaborators (weather API, event search, LLM). Each step is a
resolver with a uniform ``attempt(context)`` returning either
:class:`Resolved` or :class:`Unavailable`; :class:`ResolverChain` runs them
in order and stops at the first value.

Example:
    >>> cache = CacheResolver(coordinator, kind="weather")
    >>> api = FunctionResolver("open-meteo", fetch_forecast)
    >>> chain = ResolverChain([cache, api], on_resolved=cache.write_back)
    >>> outcome = chain.run(context)
    >>> if outcome.resolved:
    ...     forecast = outcome.value
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Literal, Protocol

from context_cache.cache.context import SearchContext
from context_cache.cache.coordinator import CacheCoordinator
from context_cache.errors import ContextCacheError, log_exception

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolved:
    """A resolver produced a value.

    Attributes:
        value: The resolved value.
        source: Name of the resolver that produced it.
        cached: True when the value came from the cache.
    """

    value: Any
    source: str
    cached: bool = False

    resolved = True


@dataclass(frozen=True)
class Unavailable:
    """A resolver could not produce a value.

    Attributes:
        source: Name of the resolver.
        reason: Short reason, e.g. a cache miss reason or ``"error"``.
        error: The exception raised by the collaborator, if any.
    """

    source: str
    reason: str
    error: BaseException | None = None

    resolved = False


Outcome = Resolved | Unavailable


class ResolutionError(ContextCacheError):
    """Every resolver in a chain came back empty."""

    def __init__(self, message: str, attempts: Sequence[Unavailable]) -> None:
        super().__init__(
            message,
            details={"attempts": ", ".join(f"{a.source}:{a.reason}" for a in attempts)},
        )
        self.attempts = tuple(attempts)


@dataclass(frozen=True)
class ChainExhausted:
    """Outcome of a chain where no resolver produced a value."""

    attempts: tuple[Unavailable, ...]

    resolved = False
    value = None

    def raise_error(self) -> None:
        raise ResolutionError("All resolvers were unavailable", self.attempts)


class Resolver(Protocol):
    name: str

    def attempt(self, context: SearchContext) -> Outcome: ...

    async def aattempt(self, context: SearchContext) -> Outcome: ...


# =============================================================================
# Resolvers
# =============================================================================


class CacheResolver:
    """Resolves from one of the coordinator's caches.

    Args:
        coordinator: The shared cache coordinator.
        kind: ``"primary"``, ``"weather"`` or ``"events"``.
        event_window_days: Days after the context date that an events
            payload written back through :meth:`write_back` covers.
    """

    def __init__(
        self,
        coordinator: CacheCoordinator,
        kind: Literal["primary", "weather", "events"] = "primary",
        *,
        name: str | None = None,
        event_window_days: int = 0,
    ) -> None:
        if kind not in ("primary", "weather", "events"):
            raise ValueError(f"Unknown cache kind: {kind!r}")
        if event_window_days < 0:
            raise ValueError(f"event_window_days must be >= 0, got {event_window_days}")
        self.coordinator = coordinator
        self.kind = kind
        self.name = name or f"cache:{kind}"
        self.event_window_days = event_window_days

    def attempt(self, context: SearchContext) -> Outcome:
        if self.kind == "primary":
            result = self.coordinator.resolve(context)
        elif self.kind == "weather":
            result = self.coordinator.resolve_weather(context.location, context.date)
        else:
            result = self.coordinator.resolve_events(context.location, context.date)

        if result.hit:
            return Resolved(result.payload, self.name, cached=True)
        return Unavailable(self.name, result.reason)

    async def aattempt(self, context: SearchContext) -> Outcome:
        return self.attempt(context)

    def write_back(self, context: SearchContext, outcome: Resolved) -> None:
        """Record a freshly resolved value into this resolver's cache.

        Usable directly as a chain's ``on_resolved`` hook.
        """
        if outcome.cached:
            return
        if self.kind == "primary":
            self.coordinator.record(context, outcome.value)
        elif self.kind == "weather":
            self.coordinator.record_weather(context.location, context.date, outcome.value)
        else:
            end = context.date + timedelta(days=self.event_window_days)
            self.coordinator.record_events(context.location, context.date, end, outcome.value)

    def __repr__(self) -> str:
        return f"CacheResolver(kind={self.kind!r})"


class FunctionResolver:
    """Resolves by calling an external collaborator.

    Exceptions from the collaborator become :class:`Unavailable` with
    reason ``"error"``; values rejected by ``validate`` (by default: None)
    become ``"invalid"``.

    Args:
        name: Source name reported in outcomes.
        fn: ``fn(context)``, sync or async.
        validate: Predicate deciding whether a value is usable.
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[SearchContext], Any],
        *,
        validate: Callable[[Any], bool] | None = None,
    ) -> None:
        self.name = name
        self.fn = fn
        self.validate = validate or (lambda value: value is not None)

    def attempt(self, context: SearchContext) -> Outcome:
        if inspect.iscoroutinefunction(self.fn):
            raise TypeError(f"Resolver {self.name!r} wraps a coroutine; use aattempt()")
        try:
            value = self.fn(context)
        except Exception as e:
            log_exception(logger, f"Resolver {self.name} failed", e, include_traceback=False)
            return Unavailable(self.name, "error", e)
        return self._outcome(value)

    async def aattempt(self, context: SearchContext) -> Outcome:
        try:
            value = self.fn(context)
            if inspect.isawaitable(value):
                value = await value
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_exception(logger, f"Resolver {self.name} failed", e, include_traceback=False)
            return Unavailable(self.name, "error", e)
        return self._outcome(value)

    def _outcome(self, value: Any) -> Outcome:
        if not self.validate(value):
            return Unavailable(self.name, "invalid")
        return Resolved(value, self.name)

    def __repr__(self) -> str:
        return f"FunctionResolver(name={self.name!r})"


# =============================================================================
# Chain
# =============================================================================


class ResolverChain:
    """Runs resolvers in priority order until one produces a value.

    Args:
        resolvers: Resolvers, highest priority first.
        on_resolved: Called with ``(context, outcome)`` after a resolver
            produced a value; typically :meth:`CacheResolver.write_back`.
            Failures of the hook are logged and do not affect the outcome.
        on_attempt: Called with ``(index, resolver_name)`` before each attempt.
    """

    def __init__(
        self,
        resolvers: Sequence[Resolver],
        *,
        on_resolved: Callable[[SearchContext, Resolved], None] | None = None,
        on_attempt: Callable[[int, str], None] | None = None,
    ) -> None:
        if not resolvers:
            raise ValueError("ResolverChain needs at least one resolver")
        self.resolvers = list(resolvers)
        self.on_resolved = on_resolved
        self.on_attempt = on_attempt

    def run(self, context: SearchContext) -> Resolved | ChainExhausted:
        attempts: list[Unavailable] = []
        for i, resolver in enumerate(self.resolvers):
            if self.on_attempt:
                self.on_attempt(i, resolver.name)
            outcome = resolver.attempt(context)
            if outcome.resolved:
                self._notify(context, outcome)
                return outcome
            attempts.append(outcome)
        return self._exhausted(attempts)

    async def arun(self, context: SearchContext) -> Resolved | ChainExhausted:
        attempts: list[Unavailable] = []
        for i, resolver in enumerate(self.resolvers):
            if self.on_attempt:
                self.on_attempt(i, resolver.name)
            outcome = await resolver.aattempt(context)
            if outcome.resolved:
                await asyncio.shield(asyncio.to_thread(self._notify, context, outcome))
                return outcome
            attempts.append(outcome)
        return self._exhausted(attempts)

    def _notify(self, context: SearchContext, outcome: Resolved) -> None:
        if self.on_resolved is None:
            return
        try:
            self.on_resolved(context, outcome)
        except Exception as e:
            log_exception(logger, f"on_resolved hook failed for {outcome.source}", e)

    @staticmethod
    def _exhausted(attempts: list[Unavailable]) -> ChainExhausted:
        logger.debug(
            "All resolvers unavailable: " + ", ".join(f"{a.source}={a.reason}" for a in attempts)
        )
        return ChainExhausted(tuple(attempts))


__all__ = [
    "CacheResolver",
    "ChainExhausted",
    "FunctionResolver",
    "Outcome",
    "Resolved",
    "ResolutionError",
    "Resolver",
    "ResolverChain",
    "Unavailable",
]
