"""
Key and entity codec for the Datastore SDK.

This module converts between SDK objects and wire messages:
- Key: Datastore key (flat kind/identifier path plus namespace)
- Entity: Key and its property data
- key_to_key_proto / key_from_key_proto: Key conversion
- value_to_property / property_to_value: Single value conversion
- entity_to_entity_proto / entity_from_entity_proto: Property bag conversion
- format_array: Lookup/query results into Entity objects

All functions are pure and synchronous.

Invariants:
    - A key is complete iff its final path segment has an id or a name
    - Integer identifiers map to path ids, string identifiers to path names
    - Every ancestor path element carries an identifier
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from . import _pb as pb
from .errors import InvalidKeyError, UnsupportedValueError

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


@dataclass
class Key:
    """A Datastore key.

    The path alternates kinds and identifiers, e.g.
    ``["Company", 123, "Employee", "alice"]``. A trailing kind without an
    identifier makes the key incomplete; the store assigns the identifier on
    insert.

    Attributes:
        path: Flat kind/identifier path
        namespace: Optional namespace
    """

    path: list[Any] = field(default_factory=list)
    namespace: str | None = None

    @property
    def kind(self) -> str | None:
        """Kind of the final path segment."""
        if not self.path:
            return None
        index = len(self.path) - 1 if len(self.path) % 2 else len(self.path) - 2
        return self.path[index]

    @property
    def id_or_name(self) -> int | str | None:
        """Identifier of the final path segment, None when incomplete."""
        if len(self.path) % 2 or not self.path:
            return None
        return self.path[-1] or None

    @property
    def is_complete(self) -> bool:
        return is_key_complete(self)


@dataclass
class Entity:
    """A keyed bag of properties.

    Attributes:
        key: Entity key
        data: Property mapping, or a list of
            ``{"name", "value", "exclude_from_indexes"}`` records
    """

    key: Key
    data: dict[str, Any] | list[dict[str, Any]] = field(default_factory=dict)


def _segments(path: list[Any]) -> list[tuple[Any, Any]]:
    return [
        (path[i], path[i + 1] if i + 1 < len(path) else None)
        for i in range(0, len(path), 2)
    ]


def is_key_complete(key: Key) -> bool:
    """Whether the final path segment of the key has an identifier."""
    segments = _segments(key.path)
    if not segments:
        return False
    kind, identifier = segments[-1]
    return bool(kind) and identifier is not None and identifier != "" and identifier != 0


def key_to_key_proto(key: Key) -> Any:
    """Convert a Key into a Key message."""
    if not key.path:
        raise InvalidKeyError("A key should contain at least a kind.", path=key.path)

    proto = pb.Key()
    if key.namespace:
        proto.partition_id.namespace = key.namespace

    for kind, identifier in _segments(key.path):
        element = proto.path_element.add(kind=kind)
        if identifier is None or identifier == "":
            continue
        if isinstance(identifier, int) and not isinstance(identifier, bool):
            element.id = identifier
        else:
            element.name = str(identifier)

    return proto


def key_from_key_proto(proto: Any) -> Key:
    """Convert a Key message into a Key."""
    path: list[Any] = []
    elements = list(proto.path_element)

    for index, element in enumerate(elements):
        path.append(element.kind)
        identifier = element.id if element.HasField("id") and element.id else element.name
        if identifier:
            path.append(identifier)
        elif index < len(elements) - 1:
            raise InvalidKeyError("Invalid key. Ancestor keys require an id or name.", path=path)

    namespace = None
    if proto.HasField("partition_id") and proto.partition_id.namespace:
        namespace = proto.partition_id.namespace

    return Key(path=path, namespace=namespace)


def value_to_property(value: Any) -> Any:
    """Convert a Python value into a Value message.

    None becomes an empty (null) value. Nested mappings become embedded
    entities and lists become list values.
    """
    proto = pb.Value()

    if value is None:
        return proto
    if isinstance(value, bool):
        proto.boolean_value = value
    elif isinstance(value, int):
        proto.integer_value = value
    elif isinstance(value, float):
        proto.double_value = value
    elif isinstance(value, datetime.datetime):
        proto.timestamp_microseconds_value = _to_microseconds(value)
    elif isinstance(value, Key):
        proto.key_value.CopyFrom(key_to_key_proto(value))
    elif isinstance(value, str):
        proto.string_value = value
    elif isinstance(value, (bytes, bytearray)):
        proto.blob_value = bytes(value)
    elif isinstance(value, Mapping):
        proto.entity_value.CopyFrom(entity_to_entity_proto(value))
    elif isinstance(value, (list, tuple)):
        proto.list_value.extend(value_to_property(v) for v in value)
    else:
        raise UnsupportedValueError(value)

    return proto


def property_to_value(proto: Any) -> Any:
    """Convert a Value message into a Python value."""
    if proto.HasField("boolean_value"):
        return proto.boolean_value
    if proto.HasField("integer_value"):
        return proto.integer_value
    if proto.HasField("double_value"):
        return proto.double_value
    if proto.HasField("timestamp_microseconds_value"):
        return _EPOCH + datetime.timedelta(microseconds=proto.timestamp_microseconds_value)
    if proto.HasField("key_value"):
        return key_from_key_proto(proto.key_value)
    if proto.HasField("blob_key_value"):
        return proto.blob_key_value
    if proto.HasField("string_value"):
        return proto.string_value
    if proto.HasField("blob_value"):
        return proto.blob_value
    if proto.HasField("entity_value"):
        return entity_from_entity_proto(proto.entity_value)
    if len(proto.list_value):
        return [property_to_value(v) for v in proto.list_value]
    return None


def entity_to_entity_proto(data: Mapping[str, Any]) -> Any:
    """Convert a property mapping into an Entity message (all indexed)."""
    proto = pb.Entity()
    for name, value in data.items():
        proto.property.add(name=name).value.CopyFrom(value_to_property(value))
    return proto


def entity_from_entity_proto(proto: Any) -> dict[str, Any]:
    """Convert an Entity message into a property mapping."""
    return {prop.name: property_to_value(prop.value) for prop in proto.property}


def format_array(results: Iterable[Any]) -> list[Entity]:
    """Convert EntityResult messages into Entity objects, preserving order."""
    return [
        Entity(
            key=key_from_key_proto(result.entity.key),
            data=entity_from_entity_proto(result.entity),
        )
        for result in results
    ]


def _to_microseconds(value: datetime.datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return (value - _EPOCH) // datetime.timedelta(microseconds=1)
