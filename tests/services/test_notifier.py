from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from billing.models.events import RankAchieved
from billing.models.ranking import PaymentRanking
from billing.services.notifier import LoggingEventSink, Notifier


def ranking(praised=False):
    return PaymentRanking(bill_id=3, rank=1, user_id=2,
                          paid_at=datetime(2024, 5, 1, tzinfo=timezone.utc), received_praise=praised)


@pytest.fixture
def rankings():
    repo = MagicMock()
    repo.get_ranking = AsyncMock(return_value=ranking())
    repo.mark_praise_given = AsyncMock(return_value=True)
    return repo


@pytest.mark.asyncio
class TestPraiseOnce:

    async def test_sends_then_flags(self, rankings):
        send = AsyncMock()

        assert await Notifier(rankings).praise_once(3, send) is True

        send.assert_awaited_once_with(2)
        rankings.mark_praise_given.assert_awaited_once_with(3, 1)

    async def test_already_praised(self, rankings):
        rankings.get_ranking.return_value = ranking(praised=True)
        send = AsyncMock()

        assert await Notifier(rankings).praise_once(3, send) is False
        send.assert_not_called()

    async def test_no_fastest_payer_yet(self, rankings):
        rankings.get_ranking.return_value = None

        assert await Notifier(rankings).praise_once(3, AsyncMock()) is False

    async def test_failed_send_leaves_flag_unset(self, rankings):
        send = AsyncMock(side_effect=RuntimeError("chat down"))

        with pytest.raises(RuntimeError):
            await Notifier(rankings).praise_once(3, send)
        rankings.mark_praise_given.assert_not_called()


@pytest.mark.asyncio
class TestPendingPraise:

    async def test_pending_until_confirmed(self, rankings):
        notifier = Notifier(rankings)

        assert await notifier.pending_praise(3) == 2
        rankings.mark_praise_given.assert_not_called()

        assert await notifier.confirm_praise(3) is True
        rankings.mark_praise_given.assert_awaited_once_with(3, 1)

    async def test_nothing_pending_once_praised(self, rankings):
        rankings.get_ranking.return_value = ranking(praised=True)

        assert await Notifier(rankings).pending_praise(3) is None

    async def test_second_confirmation_is_not_recorded(self, rankings):
        rankings.mark_praise_given.side_effect = [True, False]
        notifier = Notifier(rankings)

        assert [await notifier.confirm_praise(3), await notifier.confirm_praise(3)] == [True, False]


@pytest.mark.asyncio
async def test_publish_all_survives_sink_errors(caplog):
    sink = MagicMock()
    sink.publish = AsyncMock(side_effect=[RuntimeError("boom"), None])
    notifier = Notifier(MagicMock(), sink)
    events = [RankAchieved(bill_id=1, user_id=2, rank=1, payment_duration=5)] * 2

    await notifier.publish_all(events)

    assert sink.publish.await_count == 2
    assert "Failed to publish" in caplog.text


@pytest.mark.asyncio
async def test_logging_sink(caplog):
    caplog.set_level("INFO")
    await LoggingEventSink().publish(RankAchieved(bill_id=1, user_id=2, rank=1, payment_duration=5))
    assert "rank_achieved" in caplog.text
