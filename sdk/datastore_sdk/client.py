"""
Datastore client for Python SDK.

This module provides the host objects for request operations:
- Dataset: Non-transactional handle; operations are sent immediately
- Transaction: Buffers mutations and sends them in a single commit

Example:
    >>> async with Dataset("my-project") as ds:
    ...     key = ds.key("Company")
    ...     await ds.save({"key": key, "data": {"name": "Acme"}})
    ...     company = await ds.get(key)
    ...
    ...     async def transfer(tx):
    ...         entity = await tx.get(key)
    ...         await tx.save({"key": key, "data": {"name": "Acme Corp"}})
    ...
    ...     await ds.run_in_transaction(transfer)

Invariants:
    - Dataset always uses an ImmediateContext
    - A begun Transaction always uses a BufferedContext
    - Reads inside a transaction see the transaction's snapshot
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Mapping, Sequence
from typing import Any, Callable, TypeVar

import httpx

from . import _pb as pb
from . import request
from ._http_client import Authorizer, RequestDispatcher, bearer_token_authorizer
from .config import Settings
from .context import BufferedContext, ImmediateContext, RequestContext, dispatch
from .entity import Entity, Key
from .errors import TransactionError
from .query import Query

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Transaction:
    """A Datastore transaction.

    Lookups and queries are sent immediately, scoped to the transaction.
    save() and delete() are queued and sent together by commit().

    Example:
        >>> tx = ds.transaction()
        >>> await tx.begin()
        >>> await tx.save({"key": key, "data": {"rating": 10}})
        >>> await tx.commit()
    """

    def __init__(self, dispatcher: RequestDispatcher) -> None:
        """Initialize a transaction.

        Args:
            dispatcher: Dispatcher shared with the owning Dataset
        """
        self._dispatcher = dispatcher
        self._context: BufferedContext | None = None
        self._finalized = False

    @property
    def id(self) -> bytes | None:
        """Transaction handle, None until begin()."""
        return self._context.transaction if self._context else None

    @property
    def context(self) -> BufferedContext:
        """Buffered context of the running transaction."""
        if self._finalized:
            raise TransactionError("Transaction already finalized", transaction=self.id)
        if self._context is None:
            raise TransactionError("Transaction not begun")
        return self._context

    async def begin(self) -> Transaction:
        """Start the transaction on the server.

        Returns:
            Self for chaining
        """
        if self._context is not None or self._finalized:
            raise TransactionError("Transaction already begun", transaction=self.id)

        resp = await dispatch(ImmediateContext(self._dispatcher), "beginTransaction")
        self._context = BufferedContext(self._dispatcher, resp.transaction)
        logger.info("Transaction begun", extra={"transaction": resp.transaction.hex()})
        return self

    async def commit(self) -> None:
        """Send every queued mutation in one transactional commit.

        After a successful commit, the continuations queued by save() run in
        order so incomplete keys receive their generated ids.
        """
        context = self.context

        mutation = pb.Mutation()
        for req in context.requests:
            mutation.MergeFrom(req["mutation"])

        resp = await dispatch(context, "commit", {"mutation": mutation})
        self._finalized = True

        for callback in context.callbacks:
            callback(resp)

        logger.info(
            "Transaction committed",
            extra={"transaction": context.transaction.hex(), "requests": len(context.requests)},
        )

    async def rollback(self) -> None:
        """Abandon the transaction and drop queued mutations."""
        context = self.context
        self._finalized = True
        context.requests.clear()
        context.callbacks.clear()

        await dispatch(context, "rollback", {"transaction": context.transaction})
        logger.info("Transaction rolled back", extra={"transaction": context.transaction.hex()})

    async def get(self, keys: Key | Sequence[Key]) -> Entity | None | list[Entity]:
        """Look up entities in the transaction's snapshot (sent immediately)."""
        return await request.get(self.context, keys)

    async def save(
        self,
        entities: Entity | Mapping[str, Any] | Sequence[Entity | Mapping[str, Any]],
    ) -> None:
        """Queue entities for the commit.

        Incomplete keys are completed only after commit() succeeds.
        """
        await request.save(self.context, entities)

    async def delete(self, keys: Key | Sequence[Key]) -> None:
        """Queue keys for deletion at commit."""
        await request.delete(self.context, keys)

    async def run_query(self, q: Query) -> tuple[list[Entity], str]:
        """Run one page of a query. Returns (entities, cursor)."""
        return await request.run_query(self.context, q)

    def stream_query(self, q: Query) -> AsyncIterator[Entity]:
        """Iterate over all results of a query, page by page."""
        return request.stream_query(self.context, q)

    def allocate_ids(self, incomplete_key: Key, n: int) -> Awaitable[list[Key]]:
        """Reserve n ids for an incomplete key.

        Raises:
            InvalidKeyError: Immediately, when the key is already complete
        """
        return request.allocate_ids(self.context, incomplete_key, n)


class Dataset:
    """Non-transactional handle to a Datastore dataset.

    Provides a clean Python API over the request operations.
    Handles HTTP client lifecycle and creates transactions.

    Example:
        >>> async with Dataset("my-project") as ds:
        ...     entities, cursor = await ds.run_query(ds.create_query("Company"))
    """

    def __init__(
        self,
        project_id: str,
        *,
        client: httpx.AsyncClient | None = None,
        authorizer: Authorizer | None = None,
        settings: Settings | None = None,
        namespace: str | None = None,
    ) -> None:
        """Initialize a dataset handle.

        Args:
            project_id: Dataset identifier
            client: Optional httpx client
            authorizer: Optional coroutine attaching credentials to requests
            settings: Optional settings (defaults from environment)
            namespace: Default namespace for keys and queries
        """
        settings = settings or Settings()
        if authorizer is None and settings.access_token:
            authorizer = bearer_token_authorizer(settings.access_token)

        self.project_id = project_id
        self.namespace = namespace if namespace is not None else settings.namespace
        self._dispatcher = RequestDispatcher(
            project_id,
            client=client,
            authorizer=authorizer,
            api_host=settings.api_host,
            api_version=settings.api_version,
            scheme=settings.scheme,
            timeout=settings.timeout,
        )
        self._context: RequestContext = ImmediateContext(self._dispatcher)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> Dataset:
        """Create a dataset from environment settings."""
        settings = settings or Settings()
        return cls(settings.project_id, settings=settings, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._dispatcher.close()

    async def __aenter__(self) -> Dataset:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def key(self, path: str | Sequence[Any], namespace: str | None = None) -> Key:
        """Create a key in this dataset.

        Args:
            path: A kind, or a flat kind/identifier path
            namespace: Namespace, defaults to the dataset's

        Example:
            >>> ds.key("Company")                       # incomplete
            >>> ds.key(["Company", 123, "Employee", "alice"])
        """
        path = [path] if isinstance(path, str) else list(path)
        return Key(path=path, namespace=namespace if namespace is not None else self.namespace)

    def create_query(
        self,
        kinds: str | Sequence[str],
        namespace: str | None = None,
    ) -> Query:
        """Create a query for one or more kinds."""
        kinds = (kinds,) if isinstance(kinds, str) else tuple(kinds)
        return Query(kinds, namespace=namespace if namespace is not None else self.namespace)

    def transaction(self) -> Transaction:
        """Create a transaction (call begin() before use)."""
        return Transaction(self._dispatcher)

    async def run_in_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run fn inside a transaction.

        Commits when fn returns, rolls back and re-raises when it fails.

        Returns:
            Whatever fn returned
        """
        tx = await self.transaction().begin()
        try:
            result = await fn(tx)
        except Exception:
            logger.warning("Rolling back transaction after error", exc_info=True)
            await tx.rollback()
            raise
        await tx.commit()
        return result

    async def get(self, keys: Key | Sequence[Key]) -> Entity | None | list[Entity]:
        """Get entities by key.

        Args:
            keys: A key, or a list of keys

        Returns:
            Entity or None for a single key, list of found entities otherwise
        """
        return await request.get(self._context, keys)

    async def save(
        self,
        entities: Entity | Mapping[str, Any] | Sequence[Entity | Mapping[str, Any]],
    ) -> None:
        """Insert or update entities; incomplete keys get generated ids."""
        await request.save(self._context, entities)

    async def delete(self, keys: Key | Sequence[Key]) -> None:
        """Delete entities by key."""
        await request.delete(self._context, keys)

    async def run_query(self, q: Query) -> tuple[list[Entity], str]:
        """Run one page of a query.

        Returns:
            Tuple of (entities, end cursor)
        """
        return await request.run_query(self._context, q)

    def stream_query(self, q: Query) -> AsyncIterator[Entity]:
        """Iterate over all results of a query, page by page."""
        return request.stream_query(self._context, q)

    def allocate_ids(self, incomplete_key: Key, n: int) -> Awaitable[list[Key]]:
        """Reserve n ids for an incomplete key."""
        return request.allocate_ids(self._context, incomplete_key, n)
