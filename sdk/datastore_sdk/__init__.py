"""
Datastore Python SDK - Client library for Google Cloud Datastore (v1beta2).

This SDK provides an async interface to a Datastore dataset:
- Key and Entity types with the protobuf codec
- Immutable Query builder
- Dataset for immediate operations
- Transaction for buffered, atomic mutations

Example:
    >>> from datastore_sdk import Dataset
    >>>
    >>> async with Dataset("my-project") as ds:
    ...     key = ds.key("Company")
    ...     await ds.save({"key": key, "data": {"name": "Acme"}})
    ...     print(key.path)  # ["Company", <generated id>]
    ...
    ...     q = ds.create_query("Company").filter("name", "=", "Acme").limit(10)
    ...     async for company in ds.stream_query(q):
    ...         print(company.data)

Invariants:
    - Single key in, single result out; list in, list out
    - Incomplete keys are completed in place after save
    - Mutations inside a transaction are only sent by commit()

Version: 0.1.0
"""

__version__ = "0.1.0"

from ._http_client import Authorizer, RequestDispatcher, bearer_token_authorizer
from .client import Dataset, Transaction
from .config import Settings
from .context import BufferedContext, ImmediateContext, RequestContext
from .entity import Entity, Key, is_key_complete
from .errors import (
    ApiError,
    DatastoreError,
    InvalidKeyError,
    InvalidQueryError,
    ResponseDecodeError,
    TransactionError,
    UnsupportedValueError,
)
from .query import Query

__all__ = [
    # Version
    "__version__",
    # Data model
    "Key",
    "Entity",
    "Query",
    "is_key_complete",
    # Client
    "Dataset",
    "Transaction",
    "Settings",
    # Request plumbing
    "RequestDispatcher",
    "Authorizer",
    "bearer_token_authorizer",
    "ImmediateContext",
    "BufferedContext",
    "RequestContext",
    # Errors
    "DatastoreError",
    "ApiError",
    "ResponseDecodeError",
    "InvalidKeyError",
    "InvalidQueryError",
    "UnsupportedValueError",
    "TransactionError",
]
