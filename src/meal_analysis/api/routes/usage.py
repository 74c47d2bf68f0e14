"""Analysis usage API routes.

Lets clients show how many analyses a user has left today.
"""

from fastapi import APIRouter, Query

from meal_analysis.api.dependencies import PipelineDep
from meal_analysis.models.analysis import Tier, UsageQuota

router = APIRouter()


@router.get("/{user_id}", response_model=UsageQuota)
async def get_usage(
    user_id: str,
    pipeline: PipelineDep,
    tier: Tier = Query(Tier.BASIC, description="User's service tier"),
):
    """
    Get today's analysis usage for a user.

    - **count**: Analyses recorded today
    - **daily_limit**: Limit for the tier
    - **remaining**: Analyses left today
    - **is_limited**: True if at or over the limit
    """
    return await pipeline.usage(user_id, tier)
