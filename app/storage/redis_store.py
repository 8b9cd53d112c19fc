import json
import logging

import redis
from redis.exceptions import WatchError

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

logger = logging.getLogger(__name__)


class RedisDocumentStore(StorageAdapter):
    """Revisioned JSON documents in Redis.

    Layout: ``<prefix>:<kind>:<id>`` holds the document, ``<prefix>:index:<kind>``
    is the set of ids of that kind. The revision check runs under WATCH so a
    concurrent writer aborts our EXEC instead of being overwritten.
    """

    def __init__(self, redis_url: str | None = None, prefix: str = "docs", client: redis.Redis | None = None) -> None:
        if client is None:
            if redis_url is None:
                raise ValueError("redis_url or client is required")
            client = redis.Redis.from_url(
                redis_url,
                socket_connect_timeout=1.0,
                socket_timeout=1.0,
                decode_responses=True,
            )
        self._client = client
        self._prefix = prefix

    def _key(self, kind: str, entity_id: str) -> str:
        return f"{self._prefix}:{kind}:{entity_id}"

    def _index_key(self, kind: str) -> str:
        return f"{self._prefix}:index:{kind}"

    def get_by_id(self, model: type[EntityT], entity_id: str) -> EntityT | None:
        raw = self._client.get(self._key(model.kind, entity_id))
        if raw is None:
            return None
        return from_document(model, json.loads(raw))

    def query(self, model: type[EntityT], predicate: Predicate | None = None) -> list[EntityT]:
        predicate = predicate or Predicate()
        ids = sorted(self._client.smembers(self._index_key(model.kind)))
        if not ids:
            return []
        raws = self._client.mget([self._key(model.kind, entity_id) for entity_id in ids])
        documents = [json.loads(raw) for raw in raws if raw is not None]
        matching = [document for document in documents if predicate.matches(document)]
        return [from_document(model, document) for document in sort_documents(matching)]

    def upsert(self, entity: EntityT) -> EntityT:
        key = self._key(entity.kind, entity.id)
        document = to_document(entity)
        with self._client.pipeline() as pipe:
            try:
                pipe.watch(key)
                raw = pipe.get(key)
                current_rev = json.loads(raw)["_rev"] if raw is not None else None
                if current_rev != entity.rev:
                    raise RevisionConflict(entity.kind, entity.id, entity.rev, current_rev)
                document["_rev"] = next_revision(current_rev)
                pipe.multi()
                pipe.set(key, json.dumps(document))
                pipe.sadd(self._index_key(entity.kind), entity.id)
                pipe.execute()
            except WatchError as exc:
                logger.debug("redis_watch_aborted key=%s", key)
                raise RevisionConflict(entity.kind, entity.id, entity.rev) from exc
        return entity.model_copy(update={"rev": document["_rev"]})

    def reset(self) -> None:
        keys = list(self._client.scan_iter(match=f"{self._prefix}:*"))
        if keys:
            self._client.delete(*keys)

    def close(self) -> None:
        self._client.close()
