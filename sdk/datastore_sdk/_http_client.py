"""
Internal HTTP client for the Datastore SDK.

This module provides the low-level communication layer: every operation
is funneled through RequestDispatcher.dispatch(), which frames the body
for the current context, encodes it, sends it through the authorizer and
httpx, and decodes the response.

It is internal to the SDK and should not be used directly by users.
Users should use Dataset instead.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, Callable

import httpx
from google.protobuf.message import DecodeError

from . import _pb as pb
from .context import BufferedContext, RequestContext
from .errors import ApiError, DatastoreError, ResponseDecodeError

logger = logging.getLogger(__name__)

GOOGLE_APIS_HOST = "www.googleapis.com"
API_VERSION = "v1beta2"
CONTENT_TYPE = "application/x-protobuf"

# Receives the outgoing request and returns it with credentials attached
Authorizer = Callable[[httpx.Request], Awaitable[httpx.Request]]


def bearer_token_authorizer(token: str) -> Authorizer:
    """Authorizer that attaches an already-obtained OAuth2 access token."""

    async def authorize(request: httpx.Request) -> httpx.Request:
        request.headers["Authorization"] = f"Bearer {token}"
        return request

    return authorize


class RequestDispatcher:
    """Single funnel for Datastore API calls.

    Holds no per-call state. The httpx client is created lazily unless
    one is injected; close() only closes a client created here.
    """

    def __init__(
        self,
        project_id: str,
        *,
        client: httpx.AsyncClient | None = None,
        authorizer: Authorizer | None = None,
        api_host: str = GOOGLE_APIS_HOST,
        api_version: str = API_VERSION,
        scheme: str = "https",
        timeout: float = 30.0,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            project_id: Dataset identifier used in every request path
            client: Optional httpx client (tests inject a MockTransport)
            authorizer: Optional coroutine attaching credentials to requests
            api_host: API host
            api_version: API version path segment
            scheme: URL scheme
            timeout: Timeout for a lazily created client
        """
        self.project_id = project_id
        self._client = client
        self._owns_client = client is None
        self._authorizer = authorizer
        self._base_url = f"{scheme}://{api_host}"
        self._api_version = api_version
        self._timeout = timeout

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the underlying httpx client if this dispatcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug("Datastore HTTP client closed")

    def path(self, action: str) -> str:
        """Request path for an action."""
        return f"/datastore/{self._api_version}/datasets/{self.project_id}/{action}"

    async def dispatch(
        self,
        action: str,
        body: dict[str, Any] | None,
        context: RequestContext,
    ) -> Any:
        """Send an action and return the decoded response message.

        Args:
            action: API method (lookup, commit, runQuery, allocateIds, ...)
            body: Request fields; values may be messages, lists or scalars
            context: Context the request is issued from

        Returns:
            Decoded <Action>Response message

        Raises:
            ApiError: Non-success HTTP status
            ResponseDecodeError: Body is not a valid response message
            DatastoreError: Unknown action
            httpx.HTTPError: Transport failure, unchanged
        """
        body = dict(body or {})
        self._frame(action, body, context)

        pb_key = action[0].upper() + action[1:]
        request_cls = pb.rpc_message(pb_key + "Request")
        response_cls = pb.rpc_message(pb_key + "Response")
        if request_cls is None or response_cls is None:
            raise DatastoreError(f"Unknown Datastore action: {action}", code="UNKNOWN_ACTION")

        payload = request_cls(**body).SerializeToString()

        client = self._ensure_client()
        request = client.build_request(
            "POST",
            self._base_url + self.path(action),
            headers={"Content-Type": CONTENT_TYPE},
            content=payload,
        )
        if self._authorizer is not None:
            request = await self._authorizer(request)

        logger.debug(
            "Sending Datastore request",
            extra={"action": action, "project_id": self.project_id, "bytes": len(payload)},
        )

        response = await client.send(request, stream=True)
        try:
            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
        finally:
            await response.aclose()

        if not response.is_success:
            message = bytes(buffer).decode("utf-8", errors="replace") or response.reason_phrase
            logger.debug(
                "Datastore request failed",
                extra={"action": action, "status_code": response.status_code},
            )
            raise ApiError(response.status_code, message, bytes(buffer))

        try:
            return response_cls.FromString(bytes(buffer))
        except DecodeError as e:
            raise ResponseDecodeError(
                f"Could not decode {pb_key}Response: {e}",
                action=action,
            ) from e

    def _frame(self, action: str, body: dict[str, Any], context: RequestContext) -> None:
        """Mark the body as transactional or not."""
        if action == "commit":
            if isinstance(context, BufferedContext):
                body["mode"] = pb.MODE_TRANSACTIONAL
                body["transaction"] = context.transaction
            else:
                body["mode"] = pb.MODE_NON_TRANSACTIONAL

        if action == "lookup" and isinstance(context, BufferedContext):
            read_options = pb.ReadOptions()
            if body.get("read_options") is not None:
                read_options.CopyFrom(body["read_options"])
            read_options.transaction = context.transaction
            body["read_options"] = read_options
