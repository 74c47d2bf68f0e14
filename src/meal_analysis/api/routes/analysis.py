"""Meal analysis API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile

from meal_analysis.api.dependencies import PipelineDep, TierDep
from meal_analysis.core.exceptions import ValidationError
from meal_analysis.models.analysis import AnalysisRequest, MacroEstimate

router = APIRouter()
logger = logging.getLogger(__name__)

# Maximum image size (bytes)
MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10 MB


@router.post("", response_model=MacroEstimate, response_model_by_alias=True)
async def analyze_meal(
    pipeline: PipelineDep,
    image: Annotated[UploadFile, File(description="Meal photo (JPEG or PNG)")],
    user_id: Annotated[str, Form(min_length=1)],
    tier: TierDep,
    description: Annotated[str | None, Form()] = None,
):
    """
    Estimate calories and macros for a meal photo.

    Returns a MacroEstimate. **degraded** is true when no provider could
    analyze the image and the estimate comes from the description
    heuristic or a generic default.

    Responds 429 when the user's daily limit for their tier is reached.
    The tier comes from get_tier(), which deployments can override to look
    it up server-side.
    """
    image_data = await image.read()

    if not image_data:
        raise ValidationError("Image file is empty")
    if len(image_data) > MAX_IMAGE_SIZE:
        raise ValidationError(
            f"Image exceeds maximum size of {MAX_IMAGE_SIZE // (1024 * 1024)} MB",
            details={"size": len(image_data)},
        )

    request = AnalysisRequest(
        image=image_data,
        description=description,
        user_id=user_id,
        tier=tier,
    )
    logger.info(f"Analysis requested: user={user_id}, tier={tier.value}, bytes={len(image_data)}")
    return await pipeline.analyze_meal(request)
