"""
Query builder for the Datastore SDK.

Queries are immutable: every builder method returns a new Query, so a
query object can be reused as the template for several requests (the
stream mode of run_query rebuilds it with a fresh cursor per page).

Filters are structured (property, operator, value) triples. Supported
operators: ``=``, ``<``, ``<=``, ``>``, ``>=`` and ``HAS_ANCESTOR``.

Example:
    >>> q = (
    ...     Query("Company", namespace="ns")
    ...     .filter("size", ">", 100)
    ...     .order("-founded")
    ...     .limit(20)
    ... )
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, replace
from typing import Any

from . import _pb as pb
from .entity import Key, key_to_key_proto, value_to_property
from .errors import InvalidQueryError

KEY_PROPERTY = "__key__"


@dataclass(frozen=True)
class Filter:
    """A single property filter."""

    name: str
    op: str
    value: Any


@dataclass(frozen=True)
class Order:
    """A sort order on one property."""

    name: str
    descending: bool = False


@dataclass(frozen=True)
class Query:
    """An immutable Datastore query.

    Attributes:
        kinds: Kinds to query
        namespace: Namespace to run the query in
        filters: Property filters (combined with AND)
        orders: Sort orders
        select_val: Projected property names
        group_by_val: Group-by property names
        start_val: Start cursor (base64)
        end_val: End cursor (base64)
        offset_val: Number of results to skip
        limit_val: Maximum results, None for unbounded
    """

    kinds: tuple[str, ...] = ()
    namespace: str | None = None
    filters: tuple[Filter, ...] = ()
    orders: tuple[Order, ...] = ()
    select_val: tuple[str, ...] = ()
    group_by_val: tuple[str, ...] = ()
    start_val: str | None = None
    end_val: str | None = None
    offset_val: int = 0
    limit_val: int | None = None

    def __post_init__(self) -> None:
        kinds = (self.kinds,) if isinstance(self.kinds, str) else tuple(self.kinds)
        object.__setattr__(self, "kinds", kinds)

    def filter(self, name: str, op: str, value: Any) -> Query:
        """Add a property filter."""
        op = op.strip().upper()
        if op not in pb.OPERATORS:
            raise InvalidQueryError(f"Unknown filter operator: {op}")
        return replace(self, filters=self.filters + (Filter(name, op, value),))

    def has_ancestor(self, key: Key) -> Query:
        """Restrict results to descendants of key."""
        return self.filter(KEY_PROPERTY, "HAS_ANCESTOR", key)

    def order(self, prop: str) -> Query:
        """Sort by a property; a leading ``-`` sorts descending."""
        if prop.startswith("-"):
            return replace(self, orders=self.orders + (Order(prop[1:], True),))
        return replace(self, orders=self.orders + (Order(prop.lstrip("+")),))

    def group_by(self, *names: str) -> Query:
        return replace(self, group_by_val=tuple(names))

    def select(self, *names: str) -> Query:
        return replace(self, select_val=tuple(names))

    def start(self, cursor: str) -> Query:
        """Resume from a cursor returned by a previous page."""
        return replace(self, start_val=cursor)

    def end(self, cursor: str) -> Query:
        return replace(self, end_val=cursor)

    def limit(self, n: int | None) -> Query:
        return replace(self, limit_val=n)

    def offset(self, n: int) -> Query:
        return replace(self, offset_val=n)


def query_to_query_proto(q: Query) -> Any:
    """Convert a Query into a Query message."""
    proto = pb.Query()

    for name in q.select_val:
        proto.projection.add().property.name = name
    for kind in q.kinds:
        proto.kind.add(name=kind)

    if q.filters:
        composite = proto.filter.composite_filter
        composite.operator = pb.COMPOSITE_AND
        for f in q.filters:
            prop_filter = composite.filter.add().property_filter
            prop_filter.property.name = f.name
            prop_filter.operator = pb.OPERATORS[f.op]
            if f.name == KEY_PROPERTY and isinstance(f.value, Key):
                prop_filter.value.key_value.CopyFrom(key_to_key_proto(f.value))
            else:
                prop_filter.value.CopyFrom(value_to_property(f.value))

    for o in q.orders:
        order = proto.order.add()
        order.property.name = o.name
        order.direction = pb.DESCENDING if o.descending else pb.ASCENDING

    for name in q.group_by_val:
        proto.group_by.add(name=name)

    if q.start_val:
        proto.start_cursor = base64.b64decode(q.start_val)
    if q.end_val:
        proto.end_cursor = base64.b64decode(q.end_val)
    if q.offset_val > 0:
        proto.offset = q.offset_val
    if q.limit_val is not None and q.limit_val > 0:
        proto.limit = q.limit_val

    return proto
