from fastapi import APIRouter, Depends, status

from billing.api.v1.deps import get_ledger_service
from billing.schemas.streak import RankingCreate, RankingResponse, StreakResponse
from billing.services.ledger_service import LedgerService

router = APIRouter()


@router.get("/{platform_id}", response_model=StreakResponse)
async def get_streak(platform_id: str, ledger: LedgerService = Depends(get_ledger_service)):
    user = await ledger.users.get_by_platform_id(platform_id)
    if user is None:
        return StreakResponse(
            platform_id=platform_id,
            current_streak=0,
            longest_streak=0,
            rank1_count=0,
            rank2_count=0,
            rank3_count=0,
        )

    streak = await ledger.streaks.get_streak(user.id)
    return StreakResponse(
        platform_id=platform_id,
        badges=await ledger.streaks.list_badges(user.id),
        **streak.model_dump(include={
            "current_streak", "longest_streak", "last_payment_date",
            "rank1_count", "rank2_count", "rank3_count",
        }),
    )


@router.post("/rankings", response_model=RankingResponse, status_code=status.HTTP_201_CREATED)
async def record_ranking(data: RankingCreate, ledger: LedgerService = Depends(get_ledger_service)):
    """Manually record a podium place; the slot goes to the last writer"""
    user = await ledger.users.get_or_create(data.platform_id)
    events = await ledger.streaks.record_payment_ranking_standalone(
        data.bill_id, user.id, data.rank, data.paid_at, data.payment_duration
    )
    await ledger.notifier.publish_all(events)
    return RankingResponse(events=events)
