# Live query handles over Firestore watches
import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from portal.services.firebase_service import FirebaseService, Filter

logger = logging.getLogger(__name__)

T = TypeVar("T")


def created_at_key(item: Any) -> float:
    created_at = getattr(item, "created_at", None)
    if isinstance(created_at, datetime):
        return created_at.timestamp()
    return 0.0


class LiveQuery(Generic[T]):
    """
    Keeps the decoded result set of a live query, newest first.

    Each snapshot replaces the whole list. The handle must be released when
    its view goes away; it also works as a context manager.
    """

    def __init__(self, firebase: FirebaseService, collection: str, filters: Optional[List[Filter]],
                 decode: Callable[[Dict[str, Any]], T],
                 on_change: Optional[Callable[[List[T]], None]] = None,
                 sort_key: Callable[[T], Any] = created_at_key,
                 keep: Optional[Callable[[T], bool]] = None):
        self.collection = collection
        self._decode = decode
        self._keep = keep
        self._on_change = on_change
        self._sort_key = sort_key
        self._lock = threading.Lock()
        self._items: List[T] = []
        self._loaded = threading.Event()
        self._released = False
        self._watch = firebase.watch(collection, filters, self._on_docs)

    def _on_docs(self, docs: List[Dict[str, Any]]) -> None:
        if self._released:
            return
        items = []
        for doc in docs:
            try:
                items.append(self._decode(doc))
            except ValueError as e:
                logger.warning(f"Documento {doc.get('id')} de '{self.collection}' ignorado: {e}")
        if self._keep is not None:
            items = [item for item in items if self._keep(item)]
        items.sort(key=self._sort_key, reverse=True)
        with self._lock:
            self._items = items
        self._loaded.set()
        if self._on_change:
            self._on_change(list(items))

    @property
    def items(self) -> List[T]:
        with self._lock:
            return list(self._items)

    @property
    def loaded(self) -> bool:
        return self._loaded.is_set()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self._watch.unsubscribe()
        except Exception as e:
            logger.error(f"Erro ao encerrar observação de '{self.collection}': {e}", exc_info=True)

    def __enter__(self) -> "LiveQuery[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class SubscriptionScope:
    """Owns the live queries of one view; releasing the scope releases them all."""

    def __init__(self, owner: str = ""):
        self.owner = owner
        self._handles: Dict[str, LiveQuery] = {}

    def open(self, key: str, factory: Callable[[], LiveQuery]) -> LiveQuery:
        handle = self._handles.get(key)
        if handle is None or handle.released:
            handle = factory()
            self._handles[key] = handle
        return handle

    def __contains__(self, key: str) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def release_all(self) -> None:
        for handle in self._handles.values():
            handle.release()
        if self._handles:
            logger.info(f"{len(self._handles)} observações encerradas ({self.owner or 'sem dono'}).")
        self._handles.clear()


class ScopeRegistry:
    """
    Process-wide record of the open scopes and when each was last used.

    Streamlit gives no signal when a browser tab goes away, so scopes idle
    for longer than the session timeout are swept by whichever session runs next.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._last_used: Dict[int, Tuple[SubscriptionScope, float]] = {}

    def touch(self, scope: SubscriptionScope) -> None:
        with self._lock:
            self._last_used[id(scope)] = (scope, self._clock())

    def forget(self, scope: SubscriptionScope) -> None:
        with self._lock:
            self._last_used.pop(id(scope), None)

    def __len__(self) -> int:
        return len(self._last_used)

    def sweep(self, max_idle_seconds: float) -> int:
        """Releases the scopes idle for longer than ``max_idle_seconds``; returns how many."""
        now = self._clock()
        with self._lock:
            stale = [scope for scope, used in self._last_used.values() if now - used > max_idle_seconds]
            for scope in stale:
                del self._last_used[id(scope)]
        for scope in stale:
            scope.release_all()
        if stale:
            logger.info(f"{len(stale)} escopos abandonados encerrados.")
        return len(stale)


OPEN_SCOPES = ScopeRegistry()
