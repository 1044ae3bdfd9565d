"""In-memory Firestore stand-in for store tests.

Supports the subset of the Admin SDK used by MeasurementStore: collection /
document references, equality ``where(filter=FieldFilter(...))`` queries,
``stream()``, batched writes, SERVER_TIMESTAMP and DELETE_FIELD.
"""

import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from firebase_admin import firestore

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeSnapshot:
    def __init__(self, ref: "FakeDocumentRef", data: Optional[Dict[str, Any]]):
        self.reference = ref
        self.id = ref.id
        self.exists = data is not None
        self._data = dict(data) if data is not None else None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db: "FakeFirestore", path: str):
        self._db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def collection(self, name: str) -> "FakeCollection":
        return FakeCollection(self._db, f"{self.path}/{name}")

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self, self._db.docs.get(self.path))

    def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        self._db.apply_set(self.path, data, merge)

    def update(self, data: Dict[str, Any]) -> None:
        self._db.apply_update(self.path, data)

    def delete(self) -> None:
        self._db.docs.pop(self.path, None)


class FakeQuery:
    def __init__(self, db: "FakeFirestore", path: str, filters=()):
        self._db = db
        self.path = path
        self._filters = tuple(filters)

    def where(self, filter=None) -> "FakeQuery":
        assert filter.op_string == "==", "only equality filters are supported"
        return FakeQuery(self._db, self.path, self._filters + ((filter.field_path, filter.value),))

    def stream(self):
        prefix = self.path + "/"
        for path, data in list(self._db.docs.items()):
            if not path.startswith(prefix) or "/" in path[len(prefix):]:
                continue
            if all(data.get(field) == value for field, value in self._filters):
                yield FakeSnapshot(FakeDocumentRef(self._db, path), data)


class FakeCollection(FakeQuery):
    def document(self, doc_id: Optional[str] = None) -> FakeDocumentRef:
        return FakeDocumentRef(self._db, f"{self.path}/{doc_id or uuid.uuid4().hex[:20]}")


class FakeBatch:
    def __init__(self, db: "FakeFirestore"):
        self._db = db
        self._ops = []

    def set(self, ref, data, merge=False):
        self._ops.append(("set", ref, data, merge))

    def update(self, ref, data):
        self._ops.append(("update", ref, data, None))

    def delete(self, ref):
        self._ops.append(("delete", ref, None, None))

    def commit(self):
        if self._db.fail_commits:
            raise RuntimeError("commit failed")
        # Validate first so a failing op leaves nothing half-applied
        for op, ref, _, _ in self._ops:
            if op == "update" and ref.path not in self._db.docs:
                raise KeyError(f"No document to update: {ref.path}")
        for op, ref, data, merge in self._ops:
            if op == "set":
                self._db.apply_set(ref.path, data, merge)
            elif op == "update":
                self._db.apply_update(ref.path, data)
            else:
                self._db.docs.pop(ref.path, None)
        self.committed = True


class FakeFirestore:
    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.fail_commits = False
        self._clock = itertools.count()

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def batch(self) -> FakeBatch:
        return FakeBatch(self)

    def _resolve(self, data: Dict[str, Any], existing: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(existing)
        for key, value in data.items():
            if value is firestore.DELETE_FIELD:
                result.pop(key, None)
            elif value is firestore.SERVER_TIMESTAMP:
                result[key] = _BASE_TIME + timedelta(seconds=next(self._clock))
            else:
                result[key] = value
        return result

    def apply_set(self, path: str, data: Dict[str, Any], merge: bool) -> None:
        existing = self.docs.get(path, {}) if merge else {}
        self.docs[path] = self._resolve(data, existing)

    def apply_update(self, path: str, data: Dict[str, Any]) -> None:
        if path not in self.docs:
            raise KeyError(f"No document to update: {path}")
        self.docs[path] = self._resolve(data, self.docs[path])
