"""
Datastore request operations.

The operations shared by Dataset and Transaction, written as functions
over a request context:
- get: Batch key lookup with deferred-key continuation
- save: Upsert / insert-auto-id mutations with key reconciliation
- delete: Delete mutations
- run_query: One page of query results plus its end cursor
- stream_query: Lazily paginated async iterator over query results
- allocate_ids: Reserve ids for an incomplete key

Under an ImmediateContext mutations are committed right away. Under a
BufferedContext they are queued on the context and sent by the
transaction's commit.

Invariants:
    - get preserves the caller's shape: one key in, one entity (or None)
      out; a list in, a list out
    - save only ever mutates key.path of caller keys that were incomplete
    - stream_query keeps at most one page request in flight
    - allocate_ids rejects complete keys before any request is made
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator, Awaitable, Mapping, Sequence
from typing import Any

from . import _pb as pb
from .context import BufferedContext, RequestContext, dispatch
from .entity import (
    Entity,
    Key,
    entity_to_entity_proto,
    format_array,
    is_key_complete,
    key_from_key_proto,
    key_to_key_proto,
    value_to_property,
)
from .errors import InvalidKeyError
from .query import Query, query_to_query_proto

logger = logging.getLogger(__name__)


async def get(
    context: RequestContext,
    keys: Key | Sequence[Key],
) -> Entity | None | list[Entity]:
    """Look up entities by key.

    Keys the store defers are looked up again until every key is resolved
    or reported missing. Missing keys contribute nothing to the result.

    Args:
        context: Request context
        keys: A key, or a list of keys

    Returns:
        The entity (or None) for a single key, a list of found entities
        for a list of keys
    """
    is_multiple = isinstance(keys, (list, tuple))
    pending = [key_to_key_proto(k) for k in (keys if is_multiple else [keys])]

    found: list[Entity] = []
    rounds = 0
    while True:
        resp = await dispatch(context, "lookup", {"key": pending})
        found.extend(format_array(resp.found))
        if not len(resp.deferred):
            break
        # There may be more results; look up exactly the deferred keys again
        pending = list(resp.deferred)
        rounds += 1
        logger.debug("Lookup deferred keys", extra={"deferred": len(pending), "round": rounds})

    if is_multiple:
        return found
    return found[0] if found else None


def _descriptor_parts(descriptor: Entity | Mapping[str, Any]) -> tuple[Key, Any]:
    if isinstance(descriptor, Entity):
        return descriptor.key, descriptor.data
    return descriptor["key"], descriptor.get("data", {})


def _entity_proto(key: Key, data: Any) -> Any:
    if isinstance(data, (list, tuple)):
        ent = pb.Entity()
        for record in data:
            value = value_to_property(record.get("value"))
            exclude = record.get("exclude_from_indexes")
            if isinstance(exclude, bool):
                value.indexed = not exclude
            ent.property.add(name=record["name"]).value.CopyFrom(value)
    else:
        ent = entity_to_entity_proto(data)

    ent.key.CopyFrom(key_to_key_proto(key))
    return ent


async def save(
    context: RequestContext,
    entities: Entity | Mapping[str, Any] | Sequence[Entity | Mapping[str, Any]],
) -> None:
    """Insert or update entities.

    Complete keys are upserted. Incomplete keys are inserted with an
    auto-generated id, and the caller's Key object is updated in place with
    the generated path once the commit succeeds.

    Under a BufferedContext the mutation is queued and the key update runs
    when the transaction commits.
    """
    descriptors = list(entities) if isinstance(entities, (list, tuple)) else [entities]
    keys = [_descriptor_parts(d)[0] for d in descriptors]

    mutation = pb.Mutation()
    insert_indexes: list[int] = []

    for index, descriptor in enumerate(descriptors):
        key, data = _descriptor_parts(descriptor)
        ent = _entity_proto(key, data)

        if is_key_complete(key):
            mutation.upsert.add().CopyFrom(ent)
        else:
            insert_indexes.append(index)
            mutation.insert_auto_id.add().CopyFrom(ent)

    req = {"mutation": mutation}

    if isinstance(context, BufferedContext):
        # Generated keys for this request start after those already queued
        offset = context.pending_insert_auto_id()
        context.requests.append(req)
        context.callbacks.append(lambda resp: _reconcile(resp, keys, insert_indexes, offset))
        return

    resp = await dispatch(context, "commit", req)
    _reconcile(resp, keys, insert_indexes)


def _reconcile(
    resp: Any,
    keys: list[Key],
    insert_indexes: list[int],
    offset: int = 0,
) -> None:
    """Copy generated key paths onto the caller's incomplete keys."""
    if resp is None or not resp.HasField("mutation_result"):
        return

    generated = list(resp.mutation_result.insert_auto_id_key)[offset:offset + len(insert_indexes)]
    for index, key_proto in enumerate(generated):
        keys[insert_indexes[index]].path = key_from_key_proto(key_proto).path


async def delete(context: RequestContext, keys: Key | Sequence[Key]) -> None:
    """Delete the entities identified by the given key(s).

    Under a BufferedContext the deletion is queued without a continuation.
    """
    keys = list(keys) if isinstance(keys, (list, tuple)) else [keys]

    req = {"mutation": pb.Mutation(delete=[key_to_key_proto(k) for k in keys])}

    if isinstance(context, BufferedContext):
        context.requests.append(req)
        return

    await dispatch(context, "commit", req)


def _query_request(q: Query) -> dict[str, Any]:
    req: dict[str, Any] = {
        "read_options": pb.ReadOptions(),
        "query": query_to_query_proto(q),
    }
    if q.namespace:
        req["partition_id"] = pb.PartitionId(namespace=q.namespace)
    return req


async def _run_query_page(context: RequestContext, q: Query) -> tuple[list[Entity], str]:
    resp = await dispatch(context, "runQuery", _query_request(q))

    entities = format_array(resp.batch.entity_result)
    cursor = ""
    if resp.batch.end_cursor:
        cursor = base64.b64encode(resp.batch.end_cursor).decode("ascii")

    return entities, cursor


async def run_query(context: RequestContext, q: Query) -> tuple[list[Entity], str]:
    """Run a query once.

    Returns:
        Tuple of (entities, end cursor). The cursor is an empty string when
        the store returned none; pass it to ``q.start(cursor)`` to fetch the
        next page.
    """
    return await _run_query_page(context, q)


async def stream_query(context: RequestContext, q: Query) -> AsyncIterator[Entity]:
    """Iterate over every result of a query, fetching pages as needed.

    Nothing is requested until the first item is pulled. The query's limit
    caps the total number of yielded entities across pages. A page that
    comes back empty or without an end cursor ends the stream without
    yielding its entities. Closing the iterator stops further page requests.
    """
    remaining = q.limit_val
    if remaining is not None and remaining <= 0:
        return

    page = 0
    while True:
        entities, cursor = await _run_query_page(context, q)
        page += 1
        logger.debug(
            "Query page received",
            extra={"page": page, "entities": len(entities), "has_cursor": bool(cursor)},
        )

        if not entities or not cursor:
            return

        for entity in entities:
            yield entity
            if remaining is not None:
                remaining -= 1
                if remaining == 0:
                    return

        # The cursor already encodes the position, so the offset must not be reapplied
        q = q.start(cursor).offset(0)


def allocate_ids(context: RequestContext, incomplete_key: Key, n: int) -> Awaitable[list[Key]]:
    """Reserve n ids for an incomplete key.

    Raises:
        InvalidKeyError: Immediately, when the key is already complete
    """
    if is_key_complete(incomplete_key):
        raise InvalidKeyError("An incomplete key should be provided.", path=incomplete_key.path)

    return _allocate_ids(context, incomplete_key, n)


async def _allocate_ids(context: RequestContext, incomplete_key: Key, n: int) -> list[Key]:
    req = {"key": [key_to_key_proto(incomplete_key) for _ in range(n)]}
    resp = await dispatch(context, "allocateIds", req)
    return [key_from_key_proto(k) for k in resp.key]
