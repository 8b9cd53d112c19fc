import threading
from typing import Any

from app.storage.base import (
    EntityT,
    Predicate,
    RevisionConflict,
    StorageAdapter,
    from_document,
    next_revision,
    sort_documents,
    to_document,
)


class InMemoryDocumentStore(StorageAdapter):
    """Process-local revisioned document store.

    Behaves like a CouchDB database: each document carries a ``_rev`` and a
    write is accepted only if it names the current revision. The lock guards the
    compare-and-set of a single document, it never spans a caller's read and write.
    """

    def __init__(self) -> None:
        self._documents: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get_by_id(self, model: type[EntityT], entity_id: str) -> EntityT | None:
        with self._lock:
            document = self._documents.get((model.kind, entity_id))
            snapshot = dict(document) if document is not None else None
        if snapshot is None:
            return None
        return from_document(model, snapshot)

    def query(self, model: type[EntityT], predicate: Predicate | None = None) -> list[EntityT]:
        predicate = predicate or Predicate()
        with self._lock:
            documents = [
                dict(document)
                for (kind, _), document in self._documents.items()
                if kind == model.kind and predicate.matches(document)
            ]
        return [from_document(model, document) for document in sort_documents(documents)]

    def upsert(self, entity: EntityT) -> EntityT:
        key = (entity.kind, entity.id)
        document = to_document(entity)
        with self._lock:
            current = self._documents.get(key)
            current_rev = current["_rev"] if current is not None else None
            if current_rev != entity.rev:
                raise RevisionConflict(entity.kind, entity.id, entity.rev, current_rev)
            document["_rev"] = next_revision(current_rev)
            self._documents[key] = document
        return entity.model_copy(update={"rev": document["_rev"]})

    def reset(self) -> None:
        with self._lock:
            self._documents.clear()
