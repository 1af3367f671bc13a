"""
Request contexts shared by Dataset and Transaction.

A context is what the request operations need from their host object:
a dispatcher, and whether mutations are sent now or buffered for a
transaction commit.

- ImmediateContext: every operation is dispatched as soon as it is issued
- BufferedContext: mutations are queued and sent by Transaction.commit();
  lookups are read in the transaction's snapshot

Operations branch on the context type, never on whether an id is set.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

# Continuation run with the commit response once a buffered request is sent
CommitCallback = Callable[[Any], None]


class Dispatcher(Protocol):
    """Anything able to send an action to the API."""

    def dispatch(
        self,
        action: str,
        body: dict[str, Any] | None,
        context: RequestContext,
    ) -> Awaitable[Any]: ...


@dataclass
class ImmediateContext:
    """Send every operation immediately, outside any transaction."""

    dispatcher: Dispatcher


@dataclass
class BufferedContext:
    """Buffer mutations into a transaction.

    Attributes:
        dispatcher: Dispatcher used for lookups, queries and the final commit
        transaction: Transaction handle returned by beginTransaction
        requests: Pending commit bodies, in issue order
        callbacks: Continuations to run with the commit response, in issue order
    """

    dispatcher: Dispatcher
    transaction: bytes
    requests: list[dict[str, Any]] = field(default_factory=list)
    callbacks: list[CommitCallback] = field(default_factory=list)

    def pending_insert_auto_id(self) -> int:
        """Number of insert-auto-id entities already queued."""
        return sum(len(req["mutation"].insert_auto_id) for req in self.requests)


RequestContext = ImmediateContext | BufferedContext


async def dispatch(
    context: RequestContext,
    action: str,
    body: dict[str, Any] | None = None,
) -> Any:
    """Send an action through the context's dispatcher."""
    return await context.dispatcher.dispatch(action, body, context)
