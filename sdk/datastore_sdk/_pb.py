"""
Wire messages for the Datastore v1beta2 protocol.

The message classes are built at import time from a FileDescriptorProto
and registered in a private descriptor pool, so the SDK does not depend on
protoc output being checked in.

This module is internal to the SDK. Users should not import from here.
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message

_PACKAGE = "api.services.datastore"

_F = descriptor_pb2.FieldDescriptorProto

STRING = _F.TYPE_STRING
BYTES = _F.TYPE_BYTES
BOOL = _F.TYPE_BOOL
INT32 = _F.TYPE_INT32
INT64 = _F.TYPE_INT64
DOUBLE = _F.TYPE_DOUBLE
MESSAGE = _F.TYPE_MESSAGE
ENUM = _F.TYPE_ENUM


def _field(
    name: str,
    number: int,
    kind: int,
    type_name: str | None = None,
    *,
    repeated: bool = False,
    default: str | None = None,
) -> descriptor_pb2.FieldDescriptorProto:
    field = _F(
        name=name,
        number=number,
        type=kind,
        label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
    )
    if type_name:
        field.type_name = f".{_PACKAGE}.{type_name}"
    if default is not None:
        field.default_value = default
    return field


def _enum(name: str, *values: tuple[str, int]) -> descriptor_pb2.EnumDescriptorProto:
    return descriptor_pb2.EnumDescriptorProto(
        name=name,
        value=[
            descriptor_pb2.EnumValueDescriptorProto(name=label, number=number)
            for label, number in values
        ],
    )


def _message(
    name: str,
    *fields: descriptor_pb2.FieldDescriptorProto,
    nested: tuple[descriptor_pb2.DescriptorProto, ...] = (),
    enums: tuple[descriptor_pb2.EnumDescriptorProto, ...] = (),
) -> descriptor_pb2.DescriptorProto:
    return descriptor_pb2.DescriptorProto(
        name=name,
        field=list(fields),
        nested_type=list(nested),
        enum_type=list(enums),
    )


_FILE = descriptor_pb2.FileDescriptorProto(
    name="datastore_sdk/datastore_v1beta2.proto",
    package=_PACKAGE,
    syntax="proto2",
    message_type=[
        # Entities and keys
        _message(
            "PartitionId",
            _field("dataset_id", 3, STRING),
            _field("namespace", 4, STRING),
        ),
        _message(
            "Key",
            _field("partition_id", 1, MESSAGE, "PartitionId"),
            _field("path_element", 2, MESSAGE, "Key.PathElement", repeated=True),
            nested=(
                _message(
                    "PathElement",
                    _field("kind", 1, STRING),
                    _field("id", 2, INT64),
                    _field("name", 3, STRING),
                ),
            ),
        ),
        _message(
            "Value",
            _field("boolean_value", 1, BOOL),
            _field("integer_value", 2, INT64),
            _field("double_value", 3, DOUBLE),
            _field("timestamp_microseconds_value", 4, INT64),
            _field("key_value", 5, MESSAGE, "Key"),
            _field("entity_value", 6, MESSAGE, "Entity"),
            _field("list_value", 7, MESSAGE, "Value", repeated=True),
            _field("meaning", 14, INT32),
            _field("indexed", 15, BOOL, default="true"),
            _field("blob_key_value", 16, STRING),
            _field("string_value", 17, STRING),
            _field("blob_value", 18, BYTES),
        ),
        _message(
            "Property",
            _field("name", 1, STRING),
            _field("value", 4, MESSAGE, "Value"),
        ),
        _message(
            "Entity",
            _field("key", 1, MESSAGE, "Key"),
            _field("property", 2, MESSAGE, "Property", repeated=True),
        ),
        _message(
            "EntityResult",
            _field("entity", 1, MESSAGE, "Entity"),
            enums=(_enum("ResultType", ("FULL", 1), ("PROJECTION", 2), ("KEY_ONLY", 3)),),
        ),
        # Queries
        _message("KindExpression", _field("name", 1, STRING)),
        _message("PropertyReference", _field("name", 2, STRING)),
        _message(
            "PropertyExpression",
            _field("property", 1, MESSAGE, "PropertyReference"),
            _field(
                "aggregation_function",
                2,
                ENUM,
                "PropertyExpression.AggregationFunction",
            ),
            enums=(_enum("AggregationFunction", ("FIRST", 1)),),
        ),
        _message(
            "PropertyOrder",
            _field("property", 1, MESSAGE, "PropertyReference"),
            _field(
                "direction",
                2,
                ENUM,
                "PropertyOrder.Direction",
                default="ASCENDING",
            ),
            enums=(_enum("Direction", ("ASCENDING", 1), ("DESCENDING", 2)),),
        ),
        _message(
            "Filter",
            _field("composite_filter", 1, MESSAGE, "CompositeFilter"),
            _field("property_filter", 2, MESSAGE, "PropertyFilter"),
        ),
        _message(
            "CompositeFilter",
            _field("operator", 1, ENUM, "CompositeFilter.Operator"),
            _field("filter", 2, MESSAGE, "Filter", repeated=True),
            enums=(_enum("Operator", ("AND", 1)),),
        ),
        _message(
            "PropertyFilter",
            _field("property", 1, MESSAGE, "PropertyReference"),
            _field("operator", 2, ENUM, "PropertyFilter.Operator"),
            _field("value", 3, MESSAGE, "Value"),
            enums=(
                _enum(
                    "Operator",
                    ("LESS_THAN", 1),
                    ("LESS_THAN_OR_EQUAL", 2),
                    ("GREATER_THAN", 3),
                    ("GREATER_THAN_OR_EQUAL", 4),
                    ("EQUAL", 5),
                    ("HAS_ANCESTOR", 11),
                ),
            ),
        ),
        _message(
            "Query",
            _field("projection", 2, MESSAGE, "PropertyExpression", repeated=True),
            _field("kind", 3, MESSAGE, "KindExpression", repeated=True),
            _field("filter", 4, MESSAGE, "Filter"),
            _field("order", 5, MESSAGE, "PropertyOrder", repeated=True),
            _field("group_by", 6, MESSAGE, "PropertyReference", repeated=True),
            _field("start_cursor", 7, BYTES),
            _field("end_cursor", 8, BYTES),
            _field("offset", 10, INT32, default="0"),
            _field("limit", 11, INT32),
        ),
        _message(
            "QueryResultBatch",
            _field("entity_result_type", 1, ENUM, "EntityResult.ResultType"),
            _field("entity_result", 2, MESSAGE, "EntityResult", repeated=True),
            _field("end_cursor", 4, BYTES),
            _field("more_results", 5, ENUM, "QueryResultBatch.MoreResultsType"),
            _field("skipped_results", 6, INT32),
            enums=(
                _enum(
                    "MoreResultsType",
                    ("NOT_FINISHED", 1),
                    ("MORE_RESULTS_AFTER_LIMIT", 2),
                    ("NO_MORE_RESULTS", 3),
                ),
            ),
        ),
        # Mutations
        _message(
            "Mutation",
            _field("upsert", 1, MESSAGE, "Entity", repeated=True),
            _field("update", 2, MESSAGE, "Entity", repeated=True),
            _field("insert", 3, MESSAGE, "Entity", repeated=True),
            _field("insert_auto_id", 4, MESSAGE, "Entity", repeated=True),
            _field("delete", 5, MESSAGE, "Key", repeated=True),
            _field("force", 6, BOOL),
        ),
        _message(
            "MutationResult",
            _field("index_updates", 1, INT32),
            _field("insert_auto_id_key", 2, MESSAGE, "Key", repeated=True),
        ),
        _message(
            "ReadOptions",
            _field("read_consistency", 1, ENUM, "ReadOptions.ReadConsistency"),
            _field("transaction", 2, BYTES),
            enums=(
                _enum("ReadConsistency", ("DEFAULT", 0), ("STRONG", 1), ("EVENTUAL", 2)),
            ),
        ),
        # RPC requests and responses
        _message(
            "LookupRequest",
            _field("read_options", 1, MESSAGE, "ReadOptions"),
            _field("key", 3, MESSAGE, "Key", repeated=True),
        ),
        _message(
            "LookupResponse",
            _field("found", 1, MESSAGE, "EntityResult", repeated=True),
            _field("missing", 2, MESSAGE, "EntityResult", repeated=True),
            _field("deferred", 3, MESSAGE, "Key", repeated=True),
        ),
        _message(
            "RunQueryRequest",
            _field("read_options", 1, MESSAGE, "ReadOptions"),
            _field("partition_id", 2, MESSAGE, "PartitionId"),
            _field("query", 3, MESSAGE, "Query"),
        ),
        _message(
            "RunQueryResponse",
            _field("batch", 1, MESSAGE, "QueryResultBatch"),
        ),
        _message(
            "BeginTransactionRequest",
            _field(
                "isolation_level",
                1,
                ENUM,
                "BeginTransactionRequest.IsolationLevel",
            ),
            enums=(_enum("IsolationLevel", ("SNAPSHOT", 0), ("SERIALIZABLE", 1)),),
        ),
        _message(
            "BeginTransactionResponse",
            _field("transaction", 1, BYTES),
        ),
        _message("RollbackRequest", _field("transaction", 1, BYTES)),
        _message("RollbackResponse"),
        _message(
            "CommitRequest",
            _field("transaction", 1, BYTES),
            _field("mutation", 2, MESSAGE, "Mutation"),
            _field("mode", 5, ENUM, "CommitRequest.Mode", default="TRANSACTIONAL"),
            enums=(_enum("Mode", ("TRANSACTIONAL", 1), ("NON_TRANSACTIONAL", 2)),),
        ),
        _message(
            "CommitResponse",
            _field("mutation_result", 1, MESSAGE, "MutationResult"),
        ),
        _message(
            "AllocateIdsRequest",
            _field("key", 1, MESSAGE, "Key", repeated=True),
        ),
        _message(
            "AllocateIdsResponse",
            _field("key", 1, MESSAGE, "Key", repeated=True),
        ),
    ],
)

_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_FILE.SerializeToString())


def _class(name: str) -> type[Message]:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{_PACKAGE}.{name}"))


def _enum_value(message: str, enum: str, label: str) -> int:
    descriptor = _POOL.FindMessageTypeByName(f"{_PACKAGE}.{message}")
    return descriptor.enum_types_by_name[enum].values_by_name[label].number


PartitionId = _class("PartitionId")
Key = _class("Key")
PathElement = _class("Key.PathElement")
Value = _class("Value")
Property = _class("Property")
Entity = _class("Entity")
EntityResult = _class("EntityResult")
KindExpression = _class("KindExpression")
PropertyReference = _class("PropertyReference")
PropertyExpression = _class("PropertyExpression")
PropertyOrder = _class("PropertyOrder")
Filter = _class("Filter")
CompositeFilter = _class("CompositeFilter")
PropertyFilter = _class("PropertyFilter")
Query = _class("Query")
QueryResultBatch = _class("QueryResultBatch")
Mutation = _class("Mutation")
MutationResult = _class("MutationResult")
ReadOptions = _class("ReadOptions")
LookupRequest = _class("LookupRequest")
LookupResponse = _class("LookupResponse")
RunQueryRequest = _class("RunQueryRequest")
RunQueryResponse = _class("RunQueryResponse")
BeginTransactionRequest = _class("BeginTransactionRequest")
BeginTransactionResponse = _class("BeginTransactionResponse")
RollbackRequest = _class("RollbackRequest")
RollbackResponse = _class("RollbackResponse")
CommitRequest = _class("CommitRequest")
CommitResponse = _class("CommitResponse")
AllocateIdsRequest = _class("AllocateIdsRequest")
AllocateIdsResponse = _class("AllocateIdsResponse")

# Enums
MODE_TRANSACTIONAL = _enum_value("CommitRequest", "Mode", "TRANSACTIONAL")
MODE_NON_TRANSACTIONAL = _enum_value("CommitRequest", "Mode", "NON_TRANSACTIONAL")

COMPOSITE_AND = _enum_value("CompositeFilter", "Operator", "AND")

OPERATORS = {
    "<": _enum_value("PropertyFilter", "Operator", "LESS_THAN"),
    "<=": _enum_value("PropertyFilter", "Operator", "LESS_THAN_OR_EQUAL"),
    ">": _enum_value("PropertyFilter", "Operator", "GREATER_THAN"),
    ">=": _enum_value("PropertyFilter", "Operator", "GREATER_THAN_OR_EQUAL"),
    "=": _enum_value("PropertyFilter", "Operator", "EQUAL"),
    "HAS_ANCESTOR": _enum_value("PropertyFilter", "Operator", "HAS_ANCESTOR"),
}

ASCENDING = _enum_value("PropertyOrder", "Direction", "ASCENDING")
DESCENDING = _enum_value("PropertyOrder", "Direction", "DESCENDING")

NO_MORE_RESULTS = _enum_value("QueryResultBatch", "MoreResultsType", "NO_MORE_RESULTS")

_RPC_MESSAGES: dict[str, type[Message]] = {
    "LookupRequest": LookupRequest,
    "LookupResponse": LookupResponse,
    "RunQueryRequest": RunQueryRequest,
    "RunQueryResponse": RunQueryResponse,
    "BeginTransactionRequest": BeginTransactionRequest,
    "BeginTransactionResponse": BeginTransactionResponse,
    "RollbackRequest": RollbackRequest,
    "RollbackResponse": RollbackResponse,
    "CommitRequest": CommitRequest,
    "CommitResponse": CommitResponse,
    "AllocateIdsRequest": AllocateIdsRequest,
    "AllocateIdsResponse": AllocateIdsResponse,
}


def rpc_message(name: str) -> type[Message] | None:
    """Look up an RPC request/response class by message name."""
    return _RPC_MESSAGES.get(name)
