"""Chunked Firestore write batches."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional

from .constants import FIRESTORE_BATCH_LIMIT

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference

Callback = Optional[Callable[[], None]]


class BatchWriter:
    """Queue writes and commit every ``limit`` operations.

    Each committed batch is atomic on its own; a sequence of batches is not.
    A write may carry an ``on_commit`` callback, run only once the batch holding
    that write has been committed. Leaving the ``with`` block on an exception
    discards the pending batch together with its callbacks.
    """

    def __init__(self, db: Client, limit: int = FIRESTORE_BATCH_LIMIT) -> None:
        self.db = db
        self.limit = limit
        self.committed = 0
        self._batch = db.batch()
        self._count = 0
        self._callbacks: list[Callable[[], None]] = []

    def set(
        self,
        ref: DocumentReference,
        data: dict[str, Any],
        merge: bool = False,
        on_commit: Callback = None,
    ) -> None:
        self._batch.set(ref, data, merge=merge)
        self._queued(on_commit)

    def update(
        self, ref: DocumentReference, data: dict[str, Any], on_commit: Callback = None
    ) -> None:
        self._batch.update(ref, data)
        self._queued(on_commit)

    def delete(self, ref: DocumentReference, on_commit: Callback = None) -> None:
        self._batch.delete(ref)
        self._queued(on_commit)

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` after the next commit, even one with no writes."""
        self._callbacks.append(callback)

    def _queued(self, on_commit: Callback) -> None:
        if on_commit is not None:
            self._callbacks.append(on_commit)
        self._count += 1
        if self._count >= self.limit:
            self.commit()

    def commit(self) -> None:
        """Commit pending operations, if any, then run their callbacks."""
        if self._count:
            self._batch.commit()
            self.committed += self._count
            self._batch = self.db.batch()
            self._count = 0
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def __enter__(self) -> BatchWriter:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is None:
            self.commit()
        else:
            self._callbacks = []
