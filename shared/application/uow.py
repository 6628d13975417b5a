"""
Unit of Work

One command, one database transaction. Domain events collected from the
aggregates a command touched reach the message bus only once that
transaction has committed.
"""

from typing import List
import logging

from django.db import transaction

from shared.domain.base import Aggregate, DomainEvent

logger = logging.getLogger(__name__)


class DjangoUnitOfWork:
    """
    transaction.atomic() plus an event outbox

    Everything a command touches (swap, proposals, auction, targeting edges)
    is saved inside the block, so a failure half-way leaves no partial state
    behind and publishes nothing.

    Usage:
        with DjangoUnitOfWork() as uow:
            swap = repos.swaps.get(swap_id, lock=True)
            swap.cancel(actor_id, now, party_ids)
            repos.swaps.save(swap)
            uow.collect_events(swap)
    """

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._atomic = None

    def __enter__(self):
        self._atomic = transaction.atomic()
        self._atomic.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self._schedule_publish()
            elif self._events:
                logger.warning(
                    "Unit of work failed with %s, dropping %d events",
                    exc_type.__name__, len(self._events),
                )
        finally:
            self._events = []
            self._atomic.__exit__(exc_type, exc_val, exc_tb)

    def collect_events(self, *aggregates: Aggregate):
        """
        Move pending events from the aggregates into the outbox

        Order follows the order of ``aggregates``; each aggregate's own
        events keep the order they were raised in.
        """
        for aggregate in aggregates:
            raised = aggregate.events
            if not raised:
                continue
            self._events.extend(raised)
            aggregate.clear_events()

    def _schedule_publish(self):
        if not self._events:
            return
        events = list(self._events)
        logger.debug("Scheduling %d events for after commit", len(events))
        transaction.on_commit(lambda: _publish(events))


def _publish(events: List[DomainEvent]):
    from shared.application.message_bus import message_bus

    logger.info("Publishing %d domain events after commit", len(events))
    try:
        message_bus.publish_events(events)
    except Exception:
        # Rows are already committed; delivery failures only get logged
        logger.exception("Error publishing events")
