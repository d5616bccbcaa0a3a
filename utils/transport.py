"""
Delivery of queued mutations to the ReadLtr server.

Every request carries the mutation id as its idempotency key. The server is
expected to answer a repeated key with the original result (or a 409 naming
the same key) instead of creating a second record; the queue relies on this
to make at-least-once replay safe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol

import httpx

from models.mutation import MutationKind, QueuedMutation

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"

MUTATION_ENDPOINTS: Dict[MutationKind, str] = {
    MutationKind.CREATE_ARTICLE: "/api/articles",
    MutationKind.CREATE_HIGHLIGHT: "/api/highlights",
    MutationKind.CREATE_NOTE: "/api/notes",
}

# 4xx codes that still mean "try again later"
TRANSIENT_CLIENT_STATUSES = frozenset({408, 425, 429})


class DeliveryOutcome(str, Enum):
    ACKNOWLEDGED = "acknowledged"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class TransportResult:
    outcome: DeliveryOutcome
    status_code: Optional[int] = None
    detail: str = ""


class MutationTransport(Protocol):
    """Sends one mutation to the server and classifies the answer."""

    async def send(self, mutation: QueuedMutation) -> TransportResult:
        ...


def _is_already_applied(response: httpx.Response, idempotency_key: str) -> bool:
    """A 409 that names our own key means an earlier attempt already landed."""
    if response.status_code != 409:
        return False
    if response.headers.get(IDEMPOTENCY_HEADER) == idempotency_key:
        return True
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("idempotencyKey") == idempotency_key


def classify_response(response: httpx.Response, idempotency_key: str) -> TransportResult:
    status = response.status_code
    if 200 <= status < 300:
        return TransportResult(DeliveryOutcome.ACKNOWLEDGED, status)
    if _is_already_applied(response, idempotency_key):
        return TransportResult(DeliveryOutcome.ACKNOWLEDGED, status, "already applied")
    detail = f"HTTP {status}: {response.text[:200]}"
    if 400 <= status < 500 and status not in TRANSIENT_CLIENT_STATUSES:
        return TransportResult(DeliveryOutcome.PERMANENT, status, detail)
    return TransportResult(DeliveryOutcome.TRANSIENT, status, detail)


class HttpMutationTransport:
    """Posts mutations to the per-kind endpoints of the server API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def endpoint_for(self, kind: MutationKind) -> str:
        return f"{self.base_url}{MUTATION_ENDPOINTS[kind]}"

    async def send(self, mutation: QueuedMutation) -> TransportResult:
        url = self.endpoint_for(mutation.kind)
        body = {"idempotencyKey": mutation.id, "payload": mutation.payload}
        headers = {IDEMPOTENCY_HEADER: mutation.id}
        try:
            if self._client is not None:
                response = await self._client.post(url, json=body, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("Timed out sending %s %s: %s", mutation.kind.value, mutation.id, e)
            return TransportResult(DeliveryOutcome.TRANSIENT, detail=f"timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning("Network error sending %s %s: %s: %s", mutation.kind.value, mutation.id, type(e).__name__, e)
            return TransportResult(DeliveryOutcome.TRANSIENT, detail=f"{type(e).__name__}: {e}")
        return classify_response(response, mutation.id)
