"""Common utilities for tests."""

from __future__ import annotations

import datetime
import unittest.mock
from typing import Any, Optional

from mockfirestore import CollectionReference, MockFirestore, Query
from mockfirestore.document import DocumentReference

ARRAY_TRANSFORMS = ("ArrayUnion", "ArrayRemove")


def patch_mockfirestore() -> None:
    """Apply monkeypatches to mockfirestore to support FieldFilter and array transforms."""

    def collection_where(
        self: Any,
        field_path: Optional[str] = None,
        op_string: Optional[str] = None,
        value: Any = None,
        filter: Any = None,
    ) -> Any:
        if filter:
            return self._where(filter.field_path, filter.op_string, filter.value)
        return self._where(field_path, op_string, value)

    if not hasattr(CollectionReference, "_where"):
        CollectionReference._where = CollectionReference.where
        CollectionReference.where = collection_where

    def query_where(
        self: Any,
        field_path: Optional[str] = None,
        op_string: Optional[str] = None,
        value: Any = None,
        filter: Any = None,
    ) -> Any:
        if filter:
            return self._where(filter.field_path, filter.op_string, filter.value)
        return self._where(field_path, op_string, value)

    if not hasattr(Query, "_where"):
        Query._where = Query.where
        Query.where = query_where

    if not hasattr(DocumentReference, "_orig_update"):
        DocumentReference._orig_update = DocumentReference.update

        def patched_update(self: Any, data: dict[str, Any]) -> Any:
            current_data = self.get().to_dict() or {}
            new_data = {}
            for k, v in data.items():
                transform = type(v).__name__
                if transform not in ARRAY_TRANSFORMS:
                    new_data[k] = v
                    continue
                existing = current_data.get(k, [])
                if not isinstance(existing, list):
                    existing = []
                values = list(v.values)
                if transform == "ArrayUnion":
                    merged = list(existing)
                    for item in values:
                        if item not in merged:
                            merged.append(item)
                    new_data[k] = merged
                else:
                    new_data[k] = [i for i in existing if i not in values]
            return self._orig_update(new_data)

        DocumentReference.update = patched_update


class MockBatch:
    """Write batch that applies its operations on commit, in order."""

    def __init__(self, db: Any) -> None:
        self.db = db
        self.operations: list[tuple[str, Any, Any]] = []
        self.commit = unittest.mock.MagicMock(side_effect=self._real_commit)

    def update(self, ref: Any, data: Any) -> None:
        self.operations.append(("update", ref, data))

    def set(self, ref: Any, data: Any, merge: bool = False) -> None:
        self.operations.append(("merge" if merge else "set", ref, data))

    def delete(self, ref: Any) -> None:
        self.operations.append(("delete", ref, None))

    def _real_commit(self) -> None:
        operations, self.operations = self.operations, []
        for kind, ref, data in operations:
            if kind == "delete":
                ref.delete()
            elif kind == "update":
                ref.update(data)
            else:
                ref.set(data, merge=kind == "merge")


def mock_db() -> MockFirestore:
    """Return a patched MockFirestore whose batches apply on commit."""
    patch_mockfirestore()
    db = MockFirestore()
    db.batch = unittest.mock.MagicMock(side_effect=lambda: MockBatch(db))
    return db


def days_ago(days: int) -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(days=days)


def doc_ids(db: Any, collection: str) -> set[str]:
    """Ids of the documents that really exist in a collection."""
    return {doc.id for doc in db.collection(collection).stream() if doc.exists}
