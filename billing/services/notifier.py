"""
Event delivery.

The engine hands structured events to an EventSink after the storage
transaction commits. Adapters supply their own sink; the default one logs.
"""

import logging
from typing import Awaitable, Callable, Iterable, Optional, Protocol

from billing.models.events import LedgerEvent
from billing.repositories.ranking_repo import RankingRepository

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    async def publish(self, event: LedgerEvent) -> None:
        ...


class LoggingEventSink:
    """Default sink: one log line per event."""

    async def publish(self, event: LedgerEvent) -> None:
        logger.info("event %s", event.model_dump_json())


class Notifier:

    def __init__(self, rankings: RankingRepository, sink: EventSink | None = None):
        self.rankings = rankings
        self.sink = sink or LoggingEventSink()

    async def publish_all(self, events: Iterable[LedgerEvent]) -> None:
        for event in events:
            try:
                await self.sink.publish(event)
            except Exception:
                # Delivery is best effort; the ledger write already committed
                logger.exception("Failed to publish %s", type(event).__name__)

    async def pending_praise(self, bill_id: int) -> Optional[int]:
        """User id of the bill's fastest payer, or None if nobody ranked or they were praised."""
        first = await self.rankings.get_ranking(bill_id, 1)
        if first is None or first.received_praise:
            return None
        return first.user_id

    async def confirm_praise(self, bill_id: int) -> bool:
        """Flag the fastest payer as praised once the praise went out. False if already flagged."""
        return await self.rankings.mark_praise_given(bill_id, 1)

    async def praise_once(self, bill_id: int, send: Callable[[int], Awaitable[None]]) -> bool:
        """
        Call send(user_id) for the bill's fastest payer unless already praised.

        Check, send, then flag; a failed send leaves the praise pending. Two
        racing callers can both send, and that duplicate is tolerated.
        Returns True if send was called.
        """
        user_id = await self.pending_praise(bill_id)
        if user_id is None:
            return False

        await send(user_id)
        await self.confirm_praise(bill_id)
        return True
