"""In-memory checklist cache with staleness tracking and change fan-out.

Entries are keyed by checklist type (or ``"results"``) and always replaced
as a whole: a snapshot handed out by :meth:`ChecklistCache.get` is an
immutable tuple that the cache never touches again.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_SECONDS = 5 * 60

# Notification rounds allowed per dispatch before a listener cycle is cut.
MAX_NOTIFY_ROUNDS = 32

CacheListener = Callable[[Optional[str]], None]
FetchFunction = Callable[[], Awaitable[Iterable[Any]]]


class Subscription:
    """Disposer returned by ``subscribe`` calls.

    Callable, usable as a context manager, and safe to close more than once.
    """

    def __init__(self, dispose: Callable[[], None]) -> None:
        self._dispose: Optional[Callable[[], None]] = dispose

    @property
    def active(self) -> bool:
        return self._dispose is not None

    def close(self) -> None:
        dispose, self._dispose = self._dispose, None
        if dispose is not None:
            dispose()

    __call__ = close

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@dataclass(frozen=True)
class CacheEntry:
    items: Tuple[Any, ...]
    updated_at: float


@dataclass
class RefreshResult:
    """Tagged outcome of :meth:`ChecklistCache.refresh`."""

    key: str
    success: bool
    items: Tuple[Any, ...] = ()
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False)


class ChecklistCache:
    """Keyed snapshot store shared by every mounted view."""

    def __init__(
        self,
        *,
        freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.freshness_seconds = freshness_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._listeners: Dict[int, CacheListener] = {}
        self._tokens = itertools.count(1)
        self._pending: Deque[Optional[str]] = deque()
        self._dispatching = False

    def get(self, key: str) -> Tuple[Any, ...]:
        entry = self._entries.get(key)
        return entry.items if entry is not None else ()

    def last_updated(self, key: str) -> float:
        entry = self._entries.get(key)
        return entry.updated_at if entry is not None else 0.0

    def keys(self) -> List[str]:
        return list(self._entries)

    def is_stale(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return True
        return self._clock() - entry.updated_at > self.freshness_seconds

    def set(self, key: str, items: Iterable[Any]) -> None:
        self._entries[key] = CacheEntry(items=tuple(items), updated_at=self._clock())
        logger.debug("Cache set %s (%d items)", key, len(self._entries[key].items))
        self._notify(key)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        logger.debug("Cache invalidated %s", key)
        self._notify(key)

    def invalidate_all(self) -> None:
        self._entries = {}
        logger.debug("Cache cleared")
        self._notify(None)

    def subscribe(self, listener: CacheListener) -> Subscription:
        """Register a listener called with the changed key (None for a full clear)."""
        token = next(self._tokens)
        self._listeners[token] = listener
        return Subscription(lambda: self._listeners.pop(token, None))

    async def refresh(self, key: str, fetch: FetchFunction) -> RefreshResult:
        """Fetch fresh items and store them; failures leave the entry untouched."""
        try:
            items = tuple(await fetch())
        except Exception as exc:
            logger.warning("Refresh of %s failed: %s", key, exc)
            return RefreshResult(key=key, success=False, error=str(exc) or type(exc).__name__, exception=exc)

        self.set(key, items)
        return RefreshResult(key=key, success=True, items=items)

    def _notify(self, key: Optional[str]) -> None:
        self._pending.append(key)
        if self._dispatching:
            # Re-entrant call from a listener; delivered after this round.
            return

        self._dispatching = True
        rounds = 0
        try:
            while self._pending:
                rounds += 1
                if rounds > MAX_NOTIFY_ROUNDS:
                    logger.warning(
                        "Dropping %d cache notifications after %d rounds; listener cycle suspected",
                        len(self._pending),
                        MAX_NOTIFY_ROUNDS,
                    )
                    self._pending.clear()
                    break
                current = self._pending.popleft()
                for listener in list(self._listeners.values()):
                    try:
                        listener(current)
                    except Exception:
                        logger.exception("Cache listener failed for key %s", current)
        finally:
            self._dispatching = False
