import time
from typing import Any, Callable

from app.config import settings


class UserScopedCache:
    """
    Process-local cache of query results keyed by (user_id, resource_kind).

    Entries never cross users. Mutations drop the kinds they touch; a change
    of identity (sign-in, sign-out, account deletion) drops everything the
    user had cached. Other gunicorn workers never see an invalidation, so the
    cache stays off (TTL 0) unless the app runs in a single worker.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[int, str], tuple[float, Any]] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, user_id: int, kind: str) -> Any | None:
        if not self.enabled:
            return None
        entry = self._entries.get((user_id, kind))
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            self._entries.pop((user_id, kind), None)
            return None
        return value

    def set(self, user_id: int, kind: str, value: Any) -> None:
        if self.enabled:
            self._entries[(user_id, kind)] = (self._clock(), value)

    def invalidate(self, user_id: int, *kinds: str) -> None:
        for kind in kinds:
            self._entries.pop((user_id, kind), None)

    def invalidate_user(self, user_id: int) -> None:
        for key in [k for k in self._entries if k[0] == user_id]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


CATEGORIES = "categories"
TAGS = "tags"

query_cache = UserScopedCache(settings.CACHE_TTL_SECONDS)
