from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Literal, Protocol, TypeVar

from ..config import PAGE_SIZE, SELECTION_TTL_SECONDS, SWEEP_INTERVAL_SECONDS, logger
from .results import ShowHierarchy, VODResult

MessageKey = tuple[int, int]  # (chat_id, message_id)
T = TypeVar("T")

CONTEXT_LOST_MESSAGE = "This selection has expired. Please run the command again."


class SelectionStep(str, Enum):
    """States of an interactive pick."""

    AWAITING_PICK = "awaiting_pick"
    AWAITING_SHOW = "awaiting_show"
    AWAITING_SEASON = "awaiting_season"
    AWAITING_EPISODE = "awaiting_episode"
    TERMINAL = "terminal"


class SelectionContextError(Exception):
    """Raised when a flow needs state that is missing from its context."""

    def __init__(self, user_message: str = CONTEXT_LOST_MESSAGE):
        super().__init__(user_message)
        self.user_message = user_message


@dataclass(frozen=True)
class CacheIntent:
    """Marks a selection whose terminal pick caches instead of downloading."""

    days: int


@dataclass
class FlatSelection:
    results: list[VODResult] = field(default_factory=list)
    tag: Literal["flat"] = "flat"


@dataclass
class HierarchicalSelection:
    hierarchy: ShowHierarchy = field(default_factory=ShowHierarchy)
    step: SelectionStep = SelectionStep.AWAITING_SHOW
    show: str | None = None
    season: int | None = None
    page: int = 0
    tag: Literal["hierarchical"] = "hierarchical"

    def require_show(self) -> str:
        if not self.show:
            raise SelectionContextError()
        return self.show

    def require_season(self) -> int:
        if self.season is None:
            raise SelectionContextError()
        return self.season

    def current_episodes(self) -> list[VODResult]:
        if not self.show or self.season is None:
            return []
        return self.hierarchy.episodes(self.show, self.season)


Selection = FlatSelection | HierarchicalSelection


@dataclass
class SelectionContext:
    """
    State of one in-progress pick, owned by the store and keyed by the
    message that displays it.

    `kind` separates component (button) pickers from legacy digit-reaction
    pickers; the two are expired differently by the sweeper.
    """

    owner_id: int
    chat_id: int
    query: str
    selection: Selection
    cache_intent: CacheIntent | None = None
    kind: Literal["component", "reaction"] = "component"
    page: int = 0
    per_page: int = PAGE_SIZE
    created_at: float = field(default_factory=time.monotonic)
    enriched_pages: set[int] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.per_page = max(1, min(self.per_page, PAGE_SIZE))

    @property
    def step(self) -> SelectionStep:
        if isinstance(self.selection, HierarchicalSelection):
            return self.selection.step
        return SelectionStep.AWAITING_PICK

    @property
    def results(self) -> list[VODResult]:
        if isinstance(self.selection, FlatSelection):
            return self.selection.results
        return []

    def is_owned_by(self, user_id: int | None) -> bool:
        return user_id is not None and user_id == self.owner_id

    def age(self, now: float | None = None) -> float:
        return (now if now is not None else time.monotonic()) - self.created_at


class ReadWriteLock:
    """
    asyncio reader/writer lock: any number of concurrent readers, writers
    exclusive. Waiting writers block new readers so writes are not starved.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and not self._writers_waiting
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and not self._readers
                )
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class ContextStore(Protocol):
    """Concurrency-safe mapping of message key -> selection context."""

    async def put(self, key: MessageKey, context: SelectionContext) -> None: ...

    async def get(self, key: MessageKey) -> SelectionContext | None: ...

    async def remove(self, key: MessageKey) -> SelectionContext | None: ...

    async def mutate(
        self,
        key: MessageKey,
        user_id: int | None,
        fn: Callable[[SelectionContext], T],
    ) -> T | None: ...

    async def consume(
        self,
        key: MessageKey,
        user_id: int | None,
        fn: Callable[[SelectionContext], T | None],
    ) -> T | None: ...

    async def sweep_expired(self, now: float | None = None) -> int: ...

    def __len__(self) -> int: ...


class InMemoryContextStore:
    """
    Process-local ContextStore.

    Lookups share the lock; inserts, in-place mutations, consumption and
    sweeps take it exclusively. Callbacks passed to `mutate` and `consume`
    run inside the exclusive section and must not await.
    """

    def __init__(
        self,
        *,
        ttl: float = SELECTION_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._contexts: dict[MessageKey, SelectionContext] = {}
        self._lock = ReadWriteLock()

    def __len__(self) -> int:
        return len(self._contexts)

    async def put(self, key: MessageKey, context: SelectionContext) -> None:
        async with self._lock.write():
            self._contexts[key] = context

    async def get(self, key: MessageKey) -> SelectionContext | None:
        async with self._lock.read():
            return self._contexts.get(key)

    async def remove(self, key: MessageKey) -> SelectionContext | None:
        async with self._lock.write():
            return self._contexts.pop(key, None)

    async def mutate(
        self,
        key: MessageKey,
        user_id: int | None,
        fn: Callable[[SelectionContext], T],
    ) -> T | None:
        """
        Applies `fn` to the context if it exists and belongs to `user_id`.
        Returns None (and does nothing) otherwise.
        """
        async with self._lock.write():
            context = self._contexts.get(key)
            if context is None or not context.is_owned_by(user_id):
                return None
            return fn(context)

    async def consume(
        self,
        key: MessageKey,
        user_id: int | None,
        fn: Callable[[SelectionContext], T | None],
    ) -> T | None:
        """
        Resolves a terminal pick and removes the context in one step.

        `fn` maps the context to the picked value; when it returns None the
        pick is invalid and the context stays in place. A second call for the
        same key finds nothing, so a pick is acted on at most once.
        """
        async with self._lock.write():
            context = self._contexts.get(key)
            if context is None or not context.is_owned_by(user_id):
                return None
            picked = fn(context)
            if picked is None:
                return None
            del self._contexts[key]
            return picked

    async def sweep_expired(self, now: float | None = None) -> int:
        """
        Drops every reaction context and every component context older than
        the TTL. Returns how many were removed.
        """
        current = now if now is not None else self._clock()
        async with self._lock.write():
            expired = [
                key
                for key, context in self._contexts.items()
                if context.kind == "reaction" or context.age(current) > self.ttl
            ]
            for key in expired:
                del self._contexts[key]
        return len(expired)


async def run_sweeper(
    store: ContextStore, interval: float = SWEEP_INTERVAL_SECONDS
) -> None:
    """Periodically evicts stale selection contexts until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await store.sweep_expired()
        except Exception:
            logger.exception("[SWEEP] Failed to sweep selection contexts.")
            continue
        if removed:
            logger.info(
                f"[SWEEP] Removed {removed} stale selection context(s); "
                f"{len(store)} remain."
            )
