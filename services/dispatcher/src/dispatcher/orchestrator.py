"""Dispatch orchestrator: fans a notification out to its targets and
reduces the per-channel outcomes into one notification status.

A round runs in three steps so that no reader sees a half-applied result:

1. ``prepare`` (inside the caller's transaction) moves the notification to
   ``dispatching`` and adds one delivery record per target.
2. ``run_round`` sends to every target without holding a DB session.
3. ``run_round`` then writes every outcome together with the reduced
   notification status in a single transaction.
"""

import logging
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from notify_shared.db.models import DeliveryRecord, Notification
from notify_shared.db.repositories import (
    DeliveryRecordRepository,
    NotificationRepository,
)
from notify_shared.enums import (
    SUCCESSFUL_DELIVERY_STATUSES,
    AggregationPolicy,
    DeliveryStatus,
    NotificationStatus,
)

from dispatcher.config import DispatchConfig
from dispatcher.handlers import HandlerRegistry
from dispatcher.handlers.base import DeliveryOutcome, NotificationPayload
from dispatcher.resolution import DispatchTarget

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "Unexpected error during delivery"

# A round's aggregate never replaces a read acknowledgement.
AGGREGATE_WRITABLE_STATUSES = frozenset(
    {
        NotificationStatus.DISPATCHING,
        NotificationStatus.SENT,
        NotificationStatus.FAILED,
    }
)


@dataclass(frozen=True, slots=True)
class PendingDelivery:
    """A delivery record created for a target but not yet resolved."""

    record_id: UUID
    target: DispatchTarget


def reduce_status(
    statuses: Iterable[str],
    policy: AggregationPolicy = AggregationPolicy.ANY_SUCCESS,
) -> NotificationStatus:
    """Aggregate delivery statuses into the notification status.

    Zero successes (including no records at all) is ``failed``. Under
    ``any_success`` a single success is enough for ``sent``; under
    ``all_success`` every record must have succeeded.
    """
    statuses = list(statuses)
    successes = sum(1 for s in statuses if s in SUCCESSFUL_DELIVERY_STATUSES)
    if successes == 0:
        return NotificationStatus.FAILED
    if policy == AggregationPolicy.ALL_SUCCESS and successes < len(statuses):
        return NotificationStatus.FAILED
    return NotificationStatus.SENT


def payload_for(notification: Notification) -> NotificationPayload:
    return NotificationPayload(
        title=notification.title,
        body=notification.body,
        category=str(notification.category),
        context=dict(notification.context or {}),
    )


class DispatchOrchestrator:
    """Drives one dispatch round per call to :meth:`run_round`."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        registry: HandlerRegistry,
        config: DispatchConfig | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry
        self._config = config or DispatchConfig()

    def prepare(
        self,
        session: Session,
        notification: Notification,
        targets: Sequence[DispatchTarget],
    ) -> list[PendingDelivery]:
        """Mark *notification* dispatching and add a pending record per target.

        Runs in the caller's session; the caller commits.
        """
        NotificationRepository(session).update_status(
            notification.id, NotificationStatus.DISPATCHING
        )
        records = DeliveryRecordRepository(session)
        pending = []
        for target in targets:
            record = records.create(
                DeliveryRecord(
                    notification_id=notification.id,
                    channel_id=target.channel_id,
                    status=DeliveryStatus.PENDING,
                    retry_count=0,
                )
            )
            pending.append(PendingDelivery(record.id, target))
        return pending

    def run_round(
        self,
        notification_id: UUID,
        pending: Sequence[PendingDelivery],
        payload: NotificationPayload,
    ) -> NotificationStatus:
        """Send to every pending target, then persist outcomes and aggregate.

        Blocks until every target has an outcome.
        """
        outcomes = self.send_all([p.target for p in pending], payload)

        with self._session_factory() as session:
            records = DeliveryRecordRepository(session)
            for delivery, outcome in zip(pending, outcomes):
                records.update_status(
                    delivery.record_id,
                    outcome.status,
                    provider_message_id=outcome.message_id,
                    error_message=outcome.error,
                    result_metadata=outcome.metadata,
                )

            latest = records.latest_per_channel(notification_id)
            aggregate = reduce_status(
                (r.status for r in latest), self._config.aggregation_policy
            )
            applied = NotificationRepository(session).transition(
                notification_id, aggregate, from_statuses=AGGREGATE_WRITABLE_STATUSES
            )
            session.commit()

        if not applied:
            logger.warning(
                "Aggregate not applied; notification moved on during the round",
                extra={
                    "notification_id": str(notification_id),
                    "status": str(aggregate),
                },
            )

        logger.info(
            "Dispatch round complete",
            extra={
                "notification_id": str(notification_id),
                "targets": len(pending),
                "succeeded": sum(1 for o in outcomes if o.success),
                "failed": sum(1 for o in outcomes if not o.success),
                "status": str(aggregate),
            },
        )
        return aggregate

    def send_all(
        self,
        targets: Sequence[DispatchTarget],
        payload: NotificationPayload,
    ) -> list[DeliveryOutcome]:
        """Attempt every target and return outcomes in target order.

        Never raises for a handler problem; each becomes a failed outcome.
        The send timeout counts from the moment a target's attempt starts,
        so targets queued behind busy workers keep their full allowance.
        """
        if not self._config.parallel or len(targets) <= 1:
            return [self.attempt(target, payload) for target in targets]

        timeout = self._config.send_timeout_seconds
        outcomes: list[DeliveryOutcome | None] = [None] * len(targets)
        started: dict[int, float] = {}
        executors: list[ThreadPoolExecutor] = []

        def run(index: int) -> DeliveryOutcome:
            started[index] = time.monotonic()
            return self.attempt(targets[index], payload)

        def submit(indexes: Sequence[int]) -> dict[Future[DeliveryOutcome], int]:
            executor = ThreadPoolExecutor(
                max_workers=min(self._config.max_workers, len(indexes)),
                thread_name_prefix="dispatch",
            )
            executors.append(executor)
            return {executor.submit(run, index): index for index in indexes}

        running = submit(range(len(targets)))
        try:
            while running:
                deadlines = [
                    started[i] + timeout for i in running.values() if i in started
                ]
                remaining = (
                    min(deadlines) - time.monotonic() if deadlines else timeout
                )
                done, _ = wait(
                    running, timeout=max(remaining, 0.0), return_when=FIRST_COMPLETED
                )
                for future in done:
                    outcomes[running.pop(future)] = future.result()

                now = time.monotonic()
                expired = [
                    future
                    for future, index in running.items()
                    if index in started and now - started[index] >= timeout
                ]
                if not expired:
                    continue
                for future in expired:
                    index = running.pop(future)
                    outcomes[index] = self._timed_out(targets[index])

                # A hung send keeps its worker; targets still queued behind it
                # move to a fresh pool so they are attempted.
                queued = [future for future in running if future.cancel()]
                if queued:
                    running.update(submit([running.pop(f) for f in queued]))
        finally:
            for executor in executors:
                executor.shutdown(wait=False, cancel_futures=True)

        return [o for o in outcomes if o is not None]

    def _timed_out(self, target: DispatchTarget) -> DeliveryOutcome:
        timeout = self._config.send_timeout_seconds
        logger.error(
            "Delivery timed out",
            extra={
                "channel_id": str(target.channel_id),
                "kind": str(target.kind),
                "timeout_seconds": timeout,
            },
        )
        return DeliveryOutcome.failed(
            f"Delivery timed out after {timeout}s", kind=str(target.kind)
        )

    def attempt(
        self, target: DispatchTarget, payload: NotificationPayload
    ) -> DeliveryOutcome:
        """One send through the registry, with faults turned into failures."""
        handler = self._registry.get(target.kind)
        if handler is None:
            return DeliveryOutcome.failed(
                f"No handler configured for channel kind: {target.kind}",
                kind=str(target.kind),
            )
        try:
            return handler.send(target.address, payload, target.metadata)
        except Exception:
            logger.exception(
                "Handler raised during send",
                extra={"channel_id": str(target.channel_id), "kind": str(target.kind)},
            )
            return DeliveryOutcome.failed(UNEXPECTED_ERROR, provider=handler.name)
