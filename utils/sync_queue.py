"""
Durable queue of mutations made while offline.

Each mutation is written to the local store before enqueue returns and stays
there until the server has accepted it and the local row is gone. Replay is
strictly FIFO: the next request is only sent once the previous one has a
definitive outcome, and a transient failure halts the drain so a later change
can never overtake an earlier one. Permanent (4xx) rejections are parked as
dead letters and do not hold up the rest of the queue, except for mutations
that build on a dead-lettered one (a highlight on a rejected article): those
are parked next to it without being sent, and go back to pending when it is
resubmitted.

Every state change is committed on its own, so a drain can be abandoned at
any point; the next drain starts by returning stale in_flight rows to pending.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from typing import Any, Callable, ContextManager, Dict, List, Optional, Set

from db import database
from models.mutation import DrainReport, MutationKind, MutationStatus, QueuedMutation
from utils import mutation_store
from utils.connectivity import ConnectivityState
from utils.errors import MutationNotFoundError, MutationValidationError, QueueStorageError
from utils.sm2 import utcnow
from utils.transport import DeliveryOutcome, MutationTransport, TransportResult

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT = 30.0

REQUIRED_FIELDS: Dict[MutationKind, tuple] = {
    MutationKind.CREATE_ARTICLE: ("url",),
    MutationKind.CREATE_HIGHLIGHT: ("article_id", "text"),
    MutationKind.CREATE_NOTE: ("content",),
}

# Payload fields that may name a record created by an earlier queued mutation
# (the client uses the queued mutation id as the provisional record id).
REFERENCE_FIELDS: Dict[MutationKind, tuple] = {
    MutationKind.CREATE_ARTICLE: (),
    MutationKind.CREATE_HIGHLIGHT: ("article_id",),
    MutationKind.CREATE_NOTE: ("article_id", "highlight_id"),
}

DEPENDENCY_ERROR_PREFIX = "depends on dead-lettered "


def referenced_ids(mutation: QueuedMutation) -> List[str]:
    return [
        str(mutation.payload[field]) for field in REFERENCE_FIELDS[mutation.kind]
        if mutation.payload.get(field) not in (None, "")
    ]


def validate_mutation(kind: Any, payload: Any) -> MutationKind:
    """Reject malformed mutations before anything is persisted."""
    try:
        kind = MutationKind(kind)
    except ValueError:
        raise MutationValidationError(f"Unknown mutation kind: {kind!r}") from None
    if not isinstance(payload, dict) or not payload:
        raise MutationValidationError("Mutation payload must be a non-empty object")
    missing = [
        field for field in REQUIRED_FIELDS[kind]
        if payload.get(field) in (None, "")
    ]
    if missing:
        raise MutationValidationError(
            f"{kind.value} payload is missing required field(s): {', '.join(missing)}"
        )
    try:
        json.dumps(payload)
    except (TypeError, ValueError) as e:
        raise MutationValidationError(f"Mutation payload is not JSON serializable: {e}") from e
    return kind


class SyncQueue:
    """Offline mutation queue with single-consumer, in-order replay."""

    def __init__(
        self,
        transport: MutationTransport,
        connectivity: ConnectivityState,
        *,
        conn_factory: Optional[Callable[[], ContextManager[sqlite3.Connection]]] = None,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        drain_on_enqueue: bool = True,
    ):
        self.transport = transport
        self.connectivity = connectivity
        self.send_timeout = send_timeout
        self.drain_on_enqueue = drain_on_enqueue
        self._connect = conn_factory or database.get_conn
        self._draining = False
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_draining(self) -> bool:
        return self._draining

    # Connectivity wiring

    def attach(self) -> None:
        """Start draining on every offline -> online transition."""
        if self._unsubscribe is None:
            self._unsubscribe = self.connectivity.on_change(self._on_connectivity_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self.schedule_drain()

    def schedule_drain(self) -> Optional[asyncio.Task]:
        """Run drain() in the background on the current event loop, if there is one."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; drain deferred until the next trigger")
            return None
        task = loop.create_task(self.drain())
        self._tasks.add(task)
        task.add_done_callback(self._drain_finished)
        return task

    def _drain_finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background drain failed: %s: %s", type(error).__name__, error)

    async def wait_idle(self) -> None:
        """Wait for background drains started by this queue."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Queue operations

    def recover(self) -> None:
        """Bring rows left behind by a crash back to a replayable state."""
        with self._connect() as conn:
            mutation_store.recover(conn)

    def enqueue(self, kind: Any, payload: Dict[str, Any]) -> str:
        """Persist a mutation and return its id (the idempotency key).

        Raises MutationValidationError for malformed input and QueueStorageError
        when the local store refuses the write; in the latter case the change
        was not saved and the caller must tell the user.
        """
        kind = validate_mutation(kind, payload)
        mutation_id = str(uuid.uuid4())
        try:
            with self._connect() as conn:
                mutation_store.insert_mutation(
                    conn,
                    mutation_id=mutation_id,
                    kind=kind,
                    payload=payload,
                    created_at=utcnow(),
                )
        except sqlite3.Error as e:
            logger.error("Could not save %s offline: %s", kind.value, e)
            raise QueueStorageError(f"Could not save offline: {e}") from e
        logger.info("Queued %s %s", kind.value, mutation_id)
        if self.drain_on_enqueue and self.connectivity.is_online():
            self.schedule_drain()
        return mutation_id

    async def drain(self) -> DrainReport:
        """Replay pending mutations in enqueue order.

        Returns an empty report when offline or when another drain is running.
        """
        report = DrainReport()
        if not self.connectivity.is_online():
            logger.debug("Offline; drain deferred")
            return report
        if self._draining:
            logger.debug("Drain already in progress")
            return report
        self._draining = True
        try:
            self.recover()
            last_seq = 0
            while self.connectivity.is_online():
                with self._connect() as conn:
                    mutation = mutation_store.next_pending(conn, last_seq)
                    if mutation is None:
                        break
                    blocker = self._dead_lettered_dependency(conn, mutation)
                    if blocker is not None:
                        mutation_store.mark_dead_letter(conn, mutation.id, f"{DEPENDENCY_ERROR_PREFIX}{blocker}")
                        report.dead_lettered += 1
                        logger.warning("Holding back %s %s: %s is dead-lettered", mutation.kind.value, mutation.id, blocker)
                    else:
                        mutation_store.mark_in_flight(conn, mutation.id)
                last_seq = mutation.seq
                if blocker is not None:
                    continue
                result = await self._send(mutation)
                if not self._record_outcome(mutation, result, report):
                    break
        finally:
            self._draining = False
        if not report.is_empty:
            logger.info(
                "Drain finished: %s acknowledged, %s retried later, %s dead-lettered",
                report.acknowledged, report.retried_later, report.dead_lettered,
            )
        return report

    def _dead_lettered_dependency(self, conn, mutation: QueuedMutation) -> Optional[str]:
        """Id of a dead-lettered mutation this one builds on, if any."""
        for ref in referenced_ids(mutation):
            parent = mutation_store.get_mutation(conn, ref)
            if parent is not None and parent.status is MutationStatus.DEAD_LETTER:
                return ref
        return None

    async def _send(self, mutation: QueuedMutation) -> TransportResult:
        try:
            return await asyncio.wait_for(self.transport.send(mutation), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out after %ss sending %s", self.send_timeout, mutation.id)
            return TransportResult(DeliveryOutcome.TRANSIENT, detail=f"timed out after {self.send_timeout}s")
        except (ConnectionError, OSError) as e:
            logger.warning("Connection failure sending %s: %s: %s", mutation.id, type(e).__name__, e)
            return TransportResult(DeliveryOutcome.TRANSIENT, detail=f"{type(e).__name__}: {e}")

    def _record_outcome(self, mutation: QueuedMutation, result: TransportResult, report: DrainReport) -> bool:
        """Persist the outcome of one send; returns False when the drain must stop."""
        with self._connect() as conn:
            if result.outcome is DeliveryOutcome.ACKNOWLEDGED:
                mutation_store.mark_acknowledged(conn, mutation.id)
                mutation_store.delete_mutation(conn, mutation.id)
                report.acknowledged += 1
                return True
            if result.outcome is DeliveryOutcome.PERMANENT:
                mutation_store.mark_dead_letter(conn, mutation.id, result.detail)
                report.dead_lettered += 1
                logger.warning("Server rejected %s %s: %s", mutation.kind.value, mutation.id, result.detail)
                return True
            mutation_store.mark_pending(conn, mutation.id, result.detail)
            report.retried_later += 1
            logger.info("Will retry %s %s later: %s", mutation.kind.value, mutation.id, result.detail)
            return False

    def get_pending_count(self) -> int:
        """Records the server has not acknowledged yet, dead letters included."""
        with self._connect() as conn:
            counts = mutation_store.count_by_status(conn)
        return sum(count for status, count in counts.items() if status is not MutationStatus.ACKNOWLEDGED)

    def get_dead_letter_count(self) -> int:
        with self._connect() as conn:
            return mutation_store.count_by_status(conn)[MutationStatus.DEAD_LETTER]

    def list_pending(self) -> List[QueuedMutation]:
        with self._connect() as conn:
            return mutation_store.list_mutations(
                conn, [MutationStatus.PENDING, MutationStatus.IN_FLIGHT]
            )

    def list_dead_letters(self) -> List[QueuedMutation]:
        with self._connect() as conn:
            return mutation_store.list_mutations(conn, [MutationStatus.DEAD_LETTER])

    def _get_dead_letter(self, conn, mutation_id: str) -> QueuedMutation:
        mutation = mutation_store.get_mutation(conn, mutation_id)
        if mutation is None:
            raise MutationNotFoundError(mutation_id)
        if mutation.status is not MutationStatus.DEAD_LETTER:
            raise MutationValidationError(f"Mutation {mutation_id} is {mutation.status.value}, not dead-lettered")
        return mutation

    def resubmit(self, mutation_id: str, payload: Optional[Dict[str, Any]] = None) -> QueuedMutation:
        """Return a dead letter to the queue, optionally with an edited payload.

        The id is kept, so the server still sees the same idempotency key.
        """
        with self._connect() as conn:
            mutation = self._get_dead_letter(conn, mutation_id)
            if payload is not None:
                validate_mutation(mutation.kind, payload)
                mutation_store.replace_payload(conn, mutation_id, payload)
            mutation_store.mark_pending(conn, mutation_id)
            held = self._requeue_dependents(conn, mutation_id)
            updated = mutation_store.get_mutation(conn, mutation_id)
        logger.info("Resubmitted dead-lettered mutation %s (%s dependent(s) requeued)", mutation_id, held)
        if self.drain_on_enqueue and self.connectivity.is_online():
            self.schedule_drain()
        return updated

    def _requeue_dependents(self, conn, mutation_id: str) -> int:
        """Return mutations held back only because of mutation_id to pending, transitively."""
        requeued = 0
        parents = [mutation_id]
        while parents:
            parent = parents.pop()
            for held in mutation_store.list_mutations(conn, [MutationStatus.DEAD_LETTER]):
                if held.last_error == f"{DEPENDENCY_ERROR_PREFIX}{parent}":
                    mutation_store.mark_pending(conn, held.id)
                    parents.append(held.id)
                    requeued += 1
        return requeued

    def discard(self, mutation_id: str) -> None:
        with self._connect() as conn:
            self._get_dead_letter(conn, mutation_id)
            mutation_store.delete_mutation(conn, mutation_id)
        logger.info("Discarded dead-lettered mutation %s", mutation_id)

    def clear(self) -> int:
        with self._connect() as conn:
            return mutation_store.clear_mutations(conn)
