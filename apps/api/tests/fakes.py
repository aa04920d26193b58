from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple


@dataclass
class _Snap:
    id: str
    _data: Optional[Dict[str, Any]]

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data or {})


class _DocRef:
    def __init__(self, col: "_Collection", doc_id: str):
        self._col = col
        self.id = doc_id

    def get(self, transaction=None):
        _ = transaction
        return _Snap(self.id, self._col._docs.get(self.id))

    def set(self, data: Dict[str, Any], merge: bool = False):
        self._col._db._check_writable(self._col.name)
        if not merge or self.id not in self._col._docs:
            self._col._docs[self.id] = dict(data)
            return
        merged = dict(self._col._docs[self.id])
        merged.update(dict(data))
        self._col._docs[self.id] = merged

    def update(self, data: Dict[str, Any]):
        self._col._db._check_writable(self._col.name)
        if self.id not in self._col._docs:
            raise KeyError(f"No document to update: {self._col.name}/{self.id}")
        self._col._docs[self.id].update(dict(data))

    def delete(self):
        self._col._docs.pop(self.id, None)


class _Query:
    _OPS = {
        "==": lambda a, b: a == b,
        "<": lambda a, b: a is not None and a < b,
        "<=": lambda a, b: a is not None and a <= b,
        ">": lambda a, b: a is not None and a > b,
        ">=": lambda a, b: a is not None and a >= b,
    }

    def __init__(self, col: "_Collection", filters: List[Tuple[str, str, Any]], order: Optional[Tuple[str, bool]] = None):
        self._col = col
        self._filters = filters
        self._order = order
        self._limit: Optional[int] = None

    def where(self, field: str, op: str, value: Any):
        if op not in self._OPS:
            raise AssertionError(f"Unsupported op in fake db: {op}")
        return _Query(self._col, [*self._filters, (field, op, value)], self._order)

    def order_by(self, field: str, direction: str = "ASCENDING"):
        return _Query(self._col, self._filters, (field, direction == "DESCENDING"))

    def limit(self, n: int):
        self._limit = int(n)
        return self

    def stream(self) -> Iterable[_Snap]:
        out: List[_Snap] = []
        for doc_id, data in self._col._docs.items():
            if self._matches(data):
                out.append(_Snap(doc_id, data))
        if self._order is not None:
            field, reverse = self._order
            # Firestore leaves out documents missing the ordered field.
            out = [s for s in out if s._data.get(field) is not None]
            out.sort(key=lambda s: s._data[field], reverse=reverse)
        if self._limit is not None:
            out = out[: self._limit]
        return out

    def _matches(self, data: Dict[str, Any]) -> bool:
        return all(self._OPS[op](data.get(field), value) for field, op, value in self._filters)


class _Collection(_Query):
    def __init__(self, db: "FakeDB", name: str, docs: Dict[str, Dict[str, Any]]):
        self._db = db
        self.name = name
        self._docs = docs
        super().__init__(self, [])

    def document(self, doc_id: str) -> _DocRef:
        return _DocRef(self, doc_id)


class FakeDB:
    """In-memory stand-in for the Firestore client.

    Collections named in `read_only` reject writes, which lets tests simulate
    Firestore failures in the middle of a pipeline.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.read_only: set[str] = set()

    def collection(self, name: str) -> _Collection:
        docs = self._collections.setdefault(name, {})
        return _Collection(self, name, docs)

    def docs(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _check_writable(self, name: str) -> None:
        if name in self.read_only:
            raise RuntimeError(f"Firestore write rejected for {name}")
