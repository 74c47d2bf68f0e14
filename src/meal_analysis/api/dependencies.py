"""FastAPI dependency injection factories."""

from typing import Annotated

from fastapi import Depends, Form, Request

from meal_analysis.models.analysis import Tier
from meal_analysis.services.pipeline import MealAnalysisPipeline


def get_pipeline(request: Request) -> MealAnalysisPipeline:
    """
    Get the pipeline created at application startup.

    Returns:
        MealAnalysisPipeline instance shared by all requests
    """
    return request.app.state.pipeline


def get_tier(tier: Annotated[Tier, Form()] = Tier.BASIC) -> Tier:
    """
    Get the requesting user's service tier.

    The default trusts the tier sent by the client. Deployments with an
    account service should resolve it server-side instead:

        app.dependency_overrides[get_tier] = resolve_tier_from_account
    """
    return tier


# Type aliases for cleaner route signatures
PipelineDep = Annotated[MealAnalysisPipeline, Depends(get_pipeline)]
TierDep = Annotated[Tier, Depends(get_tier)]
