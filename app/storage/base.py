from abc import ABC, abstractmethod
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar
from uuid import uuid4

from app.domain.entity import Entity

EntityT = TypeVar("EntityT", bound=Entity)
ResultT = TypeVar("ResultT")


class RevisionConflict(Exception):
    """Raised when a conditional write carries a stale optimistic token."""

    def __init__(self, kind: str, entity_id: str, expected_rev: str | None, current_rev: str | None = None):
        self.kind = kind
        self.entity_id = entity_id
        self.expected_rev = expected_rev
        self.current_rev = current_rev
        super().__init__(f"{kind} {entity_id} changed since revision {expected_rev}")


def plain_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class Predicate:
    """Filter over an entity's scalar fields.

    ``equals`` keeps records whose field equals the value, ``one_of`` keeps
    records whose field is in the collection and ``not_in`` drops records whose
    field is in the collection. Values are compared in their stored (JSON) form,
    so only string-valued fields should be filtered on.
    """

    equals: Mapping[str, Any] = field(default_factory=dict)
    one_of: Mapping[str, Collection[Any]] = field(default_factory=dict)
    not_in: Mapping[str, Collection[Any]] = field(default_factory=dict)

    def matches(self, document: Mapping[str, Any]) -> bool:
        for key, value in self.equals.items():
            if document.get(key) != plain_value(value):
                return False
        for key, values in self.one_of.items():
            if document.get(key) not in {plain_value(v) for v in values}:
                return False
        for key, values in self.not_in.items():
            if document.get(key) in {plain_value(v) for v in values}:
                return False
        return True


def where(**equals: Any) -> Predicate:
    return Predicate(equals=equals)


def next_revision(current: str | None) -> str:
    generation = int(current.split("-", 1)[0]) + 1 if current else 1
    return f"{generation}-{uuid4().hex}"


def to_document(entity: Entity) -> dict[str, Any]:
    document = entity.model_dump(mode="json", exclude={"rev"})
    document["type"] = entity.kind
    document["_rev"] = entity.rev
    return document


def from_document(model: type[EntityT], document: Mapping[str, Any]) -> EntityT:
    values = {key: value for key, value in document.items() if key not in ("type", "_rev")}
    values["rev"] = document.get("_rev")
    return model.model_validate(values)


def sort_documents(documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
    documents.sort(key=lambda doc: (doc.get("created_at") or "", doc.get("id") or ""))
    return documents


class StorageAdapter(ABC):
    """Uniform access to a backing store for slots and bookings.

    ``upsert`` is the only write primitive and it is always revision-checked:
    an entity with ``rev=None`` is inserted and fails if the id already exists,
    an entity carrying a ``rev`` replaces the stored record only while that
    revision is still current. Either failure raises ``RevisionConflict``.
    """

    @abstractmethod
    def get_by_id(self, model: type[EntityT], entity_id: str) -> EntityT | None:
        raise NotImplementedError

    @abstractmethod
    def query(self, model: type[EntityT], predicate: Predicate | None = None) -> list[EntityT]:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, entity: EntityT) -> EntityT:
        raise NotImplementedError

    def transact(self, fn: Callable[[Any], ResultT]) -> ResultT:
        raise NotImplementedError(f"{type(self).__name__} has no multi-record transactions")

    def close(self) -> None:
        return None
