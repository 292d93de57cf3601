"""Thread-safe in-memory registries keyed by workflow id."""

from __future__ import annotations

import threading
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class WorkflowRegistry(Generic[T]):
    """A lock-guarded mapping from workflow id to ``T``.

    Each registry has its own lock; the engine never needs to update two
    registries atomically.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, T] = {}

    def __contains__(self, workflow_id: object) -> bool:
        with self._lock:
            return workflow_id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, workflow_id: str) -> Optional[T]:
        with self._lock:
            return self._items.get(workflow_id)

    def set(self, workflow_id: str, item: T) -> Optional[T]:
        """Store ``item`` and return whatever it replaced."""
        with self._lock:
            previous = self._items.get(workflow_id)
            self._items[workflow_id] = item
            return previous

    def pop(self, workflow_id: str) -> Optional[T]:
        with self._lock:
            return self._items.pop(workflow_id, None)

    def discard(self, workflow_id: str, item: T) -> bool:
        """Remove the entry only if it is still ``item``."""
        with self._lock:
            if self._items.get(workflow_id) is not item:
                return False
            del self._items[workflow_id]
            return True

    def update(self, workflow_id: str, **changes: Any) -> Optional[T]:
        """Replace a stored pydantic model with a copy carrying ``changes``.

        Returns the new model, or ``None`` when nothing is stored under the id.
        """
        with self._lock:
            current = self._items.get(workflow_id)
            if current is None:
                return None
            if not isinstance(current, BaseModel):
                raise TypeError(f"Cannot update non-model entry for {workflow_id}")
            merged = current.model_copy(update=changes)
            self._items[workflow_id] = merged  # type: ignore[assignment]
            return merged  # type: ignore[return-value]

    def snapshot(self) -> Dict[str, T]:
        with self._lock:
            return dict(self._items)
