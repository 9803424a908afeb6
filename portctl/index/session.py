from __future__ import annotations
import logging
import threading
from typing import Callable, Dict, List, Tuple

from ..models import Proc, RawSocket
from .socket_index import SocketIndex

log = logging.getLogger(__name__)

Collector = Callable[[], Tuple[Dict[int, Proc], List[RawSocket]]]


class Session:
    """Holds the current SocketIndex; refresh() replaces it wholesale."""

    def __init__(self, collector: Collector):
        self.lock = threading.Lock()
        self._collector = collector
        self._index = SocketIndex.empty()

    @property
    def index(self) -> SocketIndex:
        with self.lock:
            return self._index

    def refresh(self) -> SocketIndex:
        # collect + build outside the lock; a failing collector leaves the old index in place
        procs, raw = self._collector()
        idx = SocketIndex.build(raw, procs)
        with self.lock:
            self._index = idx
        log.info("socket index refreshed: generation %d, %d sockets", idx.generation, len(idx))
        return idx
