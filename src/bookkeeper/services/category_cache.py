import time
from typing import Callable, Iterable, Optional

from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.domain.models import Category
from bookkeeper.logging_setup import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class CategoryCache:
    """
    Caller-owned cache of the category tree.

    The engine itself never caches; services hold one of these and call
    `invalidate()` whenever a category is added, changed or deleted.

    Usage:
        cache = CategoryCache(repository.get_all, ttl_seconds=60)
        taxonomy = cache.get()
        cache.invalidate()
    """

    def __init__(
        self,
        loader: Callable[[], Iterable[Category]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be non-negative, got {ttl_seconds}")
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._taxonomy: Optional[CategoryTaxonomy] = None
        self._loaded_at = 0.0

    def get(self) -> CategoryTaxonomy:
        """Cached taxonomy, reloaded once the TTL has passed."""
        now = self._clock()
        if self._taxonomy is None or now - self._loaded_at >= self.ttl_seconds:
            self._taxonomy = CategoryTaxonomy(self._loader())
            self._loaded_at = now
            logger.debug("Loaded %r", self._taxonomy)
        return self._taxonomy

    def invalidate(self) -> None:
        self._taxonomy = None

    @property
    def is_loaded(self) -> bool:
        return self._taxonomy is not None
