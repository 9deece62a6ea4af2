# SPDX-License-Identifier: Apache-2.0

"""
Periodic refresh of cached list views.

A ``PollSync`` owns one cache key. The host loop calls ``tick()``; when the
view's interval has elapsed the data is fetched again. A failed fetch keeps
the last good value readable, so views show stale data rather than none.
No threads are started here: the Flask request cycle or the ``pdao-sync``
loop drives every tick.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace

from ..config import StationConfig, SyncSettings
from ..middleware.error_handler import CustomException
from .backend import BackendClient, create_backend_client
from .cache import LocalCache, create_cache, now_ms

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

ATTENDANCE_PREFIX = "attendances:"


class PollSync:
    """
    Keeps one cached view fresh.

    Args:
        cache: shared ``LocalCache``
        key: cache key for this view
        fetch: callable returning the fresh value; raises on failure
        interval_ms: how often ``tick`` refetches
        ttl_ms: lifetime of the cached entry
        clock: millisecond clock, injectable for tests
    """

    def __init__(
        self,
        cache: LocalCache,
        key: str,
        fetch: Callable[[], Any],
        interval_ms: int,
        ttl_ms: int,
        clock: Callable[[], int] = now_ms
    ):
        self.cache = cache
        self.key = key
        self.fetch = fetch
        self.interval_ms = interval_ms
        self.ttl_ms = ttl_ms
        self.clock = clock

        self.last_updated: Optional[int] = None
        self.last_error: Optional[str] = None
        self.last_failure: Optional[CustomException] = None
        self._last_attempt: Optional[int] = None
        self._last_good: Any = None

        # Seed from a previous run; an expired entry is still better than nothing
        entry = cache.peek(key)
        if entry is not None:
            self._last_good = entry.get("data")
            self.last_updated = entry.get("timestamp")

    @property
    def stale(self) -> bool:
        """True when the most recent fetch failed."""
        return self.last_error is not None

    def is_due(self) -> bool:
        baseline = self._last_attempt if self._last_attempt is not None else self.last_updated
        if baseline is None:
            return True
        return self.clock() - baseline >= self.interval_ms

    def tick(self) -> bool:
        """Refetch if the interval has elapsed. Returns True when a fetch ran."""
        if not self.is_due():
            return False
        self.refresh(force=True)
        return True

    def refresh(self, force: bool = False) -> Any:
        """
        Return fresh data, fetching when the cache has none.

        ``force`` bypasses the TTL check entirely; a successful forced fetch
        starts a new TTL window.
        """
        if not force:
            cached = self.cache.get(self.key)
            if cached is not None:
                return cached

        with tracer.start_as_current_span("poll_sync.refresh") as span:
            span.set_attributes({"cache.key": self.key, "sync.forced": force})
            self._last_attempt = self.clock()
            try:
                data = self.fetch()
            except CustomException as e:
                self.last_error = e.message
                self.last_failure = e
                span.set_attribute("sync.result", "failed")
                logger.warning(
                    f"Refresh of {self.key} failed, keeping last good data",
                    extra={"cache_key": self.key, "error_type": e.error_type, "error": e.message}
                )
                return self.read()

            entry = self.cache.set(self.key, data, self.ttl_ms)
            self._last_good = data
            self.last_updated = entry["timestamp"]
            self.last_error = None
            self.last_failure = None
            span.set_attribute("sync.result", "updated")
            return data

    def read(self) -> Any:
        """Cached value if fresh, otherwise the last good value (possibly stale)."""
        cached = self.cache.get(self.key)
        if cached is not None:
            return cached
        return self._last_good

    def expire(self):
        """Drop the cached entry so the next ``tick`` fetches again."""
        self.cache.invalidate(self.key)
        self._last_attempt = None
        self.last_updated = None

    def status(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "stale": self.stale,
            "last_updated": self.last_updated,
            "last_error": self.last_error,
        }


class SyncRegistry:
    """The set of views a station keeps fresh, keyed by view name."""

    def __init__(self, backend: BackendClient, cache: LocalCache, settings: SyncSettings,
                 clock: Callable[[], int] = now_ms):
        self.backend = backend
        self.cache = cache
        self.settings = settings
        self.clock = clock
        self.views: Dict[str, PollSync] = {}
        self._last_read: Dict[str, int] = {}

        list_views = {
            "members": backend.list_members,
            "events": backend.list_events,
            "benefits": backend.list_benefits,
            "benefit-records": backend.list_benefit_records,
        }
        for name, fetch in list_views.items():
            self._add(name, fetch, settings.list_poll_ms, settings.list_ttl_ms)
        self._add("identity", backend.get_current_user, settings.identity_poll_ms, settings.identity_ttl_ms)

    def _add(self, name: str, fetch: Callable[[], Any], interval_ms: int, ttl_ms: int) -> PollSync:
        view = PollSync(self.cache, name, fetch, interval_ms, ttl_ms, clock=self.clock)
        self.views[name] = view
        return view

    def get(self, name: str) -> PollSync:
        return self.views[name]

    def expire(self, *names: str):
        """Force the named views to fetch on their next tick."""
        for name in names:
            self.views[name].expire()

    def attendance(self, event_id: str) -> PollSync:
        """
        Live attendance for one event, polled on the short interval.

        The view stays registered while it is read at least once per list
        TTL; after that ``tick_all`` drops it.
        """
        name = f"{ATTENDANCE_PREFIX}{event_id}"
        if name not in self.views:
            self._add(
                name,
                lambda: self.backend.list_event_attendances(event_id),
                self.settings.attendance_poll_ms,
                self.settings.list_ttl_ms
            )
        self._last_read[name] = self.clock()
        self.evict_idle()
        return self.views[name]

    def evict_idle(self) -> int:
        """Stop polling attendance views nobody has read lately."""
        cutoff = self.clock() - self.settings.list_ttl_ms
        idle = [name for name, read_at in self._last_read.items() if read_at < cutoff]
        for name in idle:
            del self.views[name]
            del self._last_read[name]
        if idle:
            logger.info(f"Stopped polling {len(idle)} idle attendance views", extra={"views": idle})
        return len(idle)

    def tick_all(self) -> int:
        """Run every due view once. Returns how many fetched."""
        self.evict_idle()
        return sum(1 for view in list(self.views.values()) if view.tick())


def main():
    """Standalone refresh loop that keeps a shared Redis cache warm."""
    from ..observability.config import setup_structured_logging

    config = StationConfig.from_env()
    setup_structured_logging(config.environment)

    cache = create_cache(config.cache_backend, config.redis_url, default_ttl_ms=config.sync.list_ttl_ms)
    registry = SyncRegistry(create_backend_client(config.backend), cache, config.sync)
    logger.info(f"Poll sync started for {len(registry.views)} views")

    try:
        while True:
            fetched = registry.tick_all()
            if fetched:
                logger.info(f"Refreshed {fetched} views")
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Poll sync stopped")


if __name__ == "__main__":
    main()
