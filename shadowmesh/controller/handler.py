"""Work queue and the event handler that feeds it."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Hashable
from typing import Any

from shadowmesh.k8s.resources import ObjectMeta, Service

CONFIG_REFRESH_KEY = "refresh"

_log = logging.getLogger(__name__)


class WorkQueue:
    """A FIFO of de-duplicated work keys.

    A key added while it is being processed is queued again once it is done.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()

    def add(self, key: Hashable) -> None:
        """Queue the key unless it is already waiting."""
        with self._cond:
            if key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def get(self) -> Hashable:
        """Block until a key is available, then return it and mark it in process."""
        with self._cond:
            while not self._queue:
                self._cond.wait()
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: Hashable) -> None:
        """Mark the key as processed, re-queueing it if it was added meanwhile."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)


def _meta_namespace_key(obj: Any) -> str:
    meta = getattr(obj, "metadata", None)
    if not isinstance(meta, ObjectMeta):
        raise TypeError(f"object has no metadata: {obj!r}")
    if meta.namespace:
        return f"{meta.namespace}/{meta.name}"
    return meta.name


class EnqueueWorkHandler:
    """Turns resource events into work keys."""

    def __init__(self, work_queue: WorkQueue) -> None:
        self.work_queue = work_queue

    def on_add(self, obj: Any) -> None:
        self._enqueue_work(obj)

    def on_update(self, old_obj: Any, new_obj: Any) -> None:
        old_meta = getattr(old_obj, "metadata", None)
        new_meta = getattr(new_obj, "metadata", None)
        # A resync event carries the same resource version: nothing to do.
        if (
            isinstance(old_meta, ObjectMeta)
            and isinstance(new_meta, ObjectMeta)
            and old_meta.resource_version == new_meta.resource_version
        ):
            return
        self._enqueue_work(new_obj)

    def on_delete(self, obj: Any) -> None:
        self._enqueue_work(obj)

    def _enqueue_work(self, obj: Any) -> None:
        if not isinstance(obj, Service):
            self.work_queue.add(CONFIG_REFRESH_KEY)
            return
        try:
            key = _meta_namespace_key(obj)
        except TypeError:
            _log.error("Unable to create a work key for resource %r", obj)
            return
        self.work_queue.add(key)