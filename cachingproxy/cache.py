"""A size-bounded, least-recently-used cache of proxied responses."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)

MAX_SIZE = 200 * (1 << 20)
MAX_ELEMENT_SIZE = 10 * (1 << 20)
# Fixed per-entry bookkeeping cost counted against the cache size.
ELEMENT_OVERHEAD = 40


@dataclass
class CacheElement:
    """A cached response together with the request that produced it."""

    data: bytes
    url: str
    last_used: int = 0

    @property
    def size(self) -> int:
        """Bytes this element counts against the cache limits."""
        return len(self.data) + 1 + len(self.url) + ELEMENT_OVERHEAD


class LRUCache:
    """Thread-safe cache that evicts the least recently used entry first."""

    def __init__(
        self, max_size: int = MAX_SIZE, max_element_size: int = MAX_ELEMENT_SIZE
    ) -> None:
        self.max_size = max_size
        self.max_element_size = max_element_size
        self._elements: OrderedDict[str, CacheElement] = OrderedDict()
        self._size = 0
        self._lock = threading.RLock()
        self._clock = itertools.count(1)

    @property
    def size(self) -> int:
        """Total size of all cached elements."""
        with self._lock:
            return self._size

    def __len__(self) -> int:
        with self._lock:
            return len(self._elements)

    def find(self, url: str) -> Optional[CacheElement]:
        """Return the element cached for ``url`` and mark it as recently used."""
        with self._lock:
            element = self._elements.get(url)
            if element is None:
                logger.info("url not found in cache")
                return None
            element.last_used = next(self._clock)
            self._elements.move_to_end(url)
            logger.info("url found in cache")
            return element

    def add(self, data: Union[bytes, bytearray], url: str) -> bool:
        """Cache ``data`` under ``url``; return False if it is too large."""
        element = CacheElement(bytes(data), url)
        with self._lock:
            if element.size > self.max_element_size:
                return False
            previous = self._elements.pop(url, None)
            if previous is not None:
                self._size -= previous.size
            while self._elements and self._size + element.size > self.max_size:
                self.remove_oldest()
            element.last_used = next(self._clock)
            self._elements[url] = element
            self._size += element.size
            return True

    def remove_oldest(self) -> Optional[CacheElement]:
        """Evict and return the least recently used element, if any."""
        with self._lock:
            if not self._elements:
                return None
            _, element = self._elements.popitem(last=False)
            self._size -= element.size
            return element