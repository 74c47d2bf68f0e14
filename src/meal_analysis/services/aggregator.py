"""
Aggregation and validation of provider output.

Classifier labels are blended into one estimate with fixed rank weights;
generative records are used as-is. Every estimate leaving this module is
clamped into plausible ranges.
"""

import logging

from meal_analysis.models.analysis import (
    LabelOutput,
    MacroEstimate,
    NutritionRecord,
    ProviderLabel,
)
from meal_analysis.services.food_reference import (
    DEFAULT_REFERENCE_TABLE,
    FoodReferenceTable,
    normalize_label,
)

logger = logging.getLogger(__name__)

# Weights for ranks 1-3 of the classifier output
RANK_WEIGHTS = (0.6, 0.3, 0.1)

# Used when none of the top labels is in the reference table
UNMATCHED_DEFAULTS = {"calories": 300.0, "protein": 15.0, "carbs": 40.0, "fats": 10.0}

# Upper bounds; all lower bounds are zero
MAX_CALORIES = 2000.0
MAX_PROTEIN = 100.0
MAX_CARBS = 200.0
MAX_FATS = 100.0


def _clamp(value: float, upper: float) -> float:
    return min(max(value, 0.0), upper)


def clamp_values(
    calories: float,
    protein: float,
    carbs: float,
    fats: float,
    confidence: float,
) -> dict[str, float]:
    """Truncate raw macro values to their bounds."""
    return {
        "calories": _clamp(calories, MAX_CALORIES),
        "protein": _clamp(protein, MAX_PROTEIN),
        "carbs": _clamp(carbs, MAX_CARBS),
        "fats": _clamp(fats, MAX_FATS),
        "confidence": _clamp(confidence, 1.0),
    }


def clamp_estimate(estimate: MacroEstimate) -> MacroEstimate:
    """Return a copy of the estimate with every numeric field within bounds."""
    clamped = clamp_values(
        estimate.calories,
        estimate.protein,
        estimate.carbs,
        estimate.fats,
        estimate.confidence,
    )
    if any(getattr(estimate, field) != value for field, value in clamped.items()):
        logger.info(f"Clamped out-of-range estimate from {estimate.source}")
    return estimate.model_copy(update=clamped)


def aggregate_labels(
    labels: list[ProviderLabel],
    table: FoodReferenceTable = DEFAULT_REFERENCE_TABLE,
    *,
    source: str = "classifier",
) -> MacroEstimate:
    """
    Blend the top-ranked labels into a single estimate.

    Ranks 1-3 are weighted 0.6 / 0.3 / 0.1. Labels missing from the
    reference table add nothing to the totals but are still reported in
    detected_foods.

    Args:
        labels: Labels ordered by confidence, highest first
        table: Reference table for per-label macros
        source: Provider name recorded on the estimate

    Returns:
        Clamped MacroEstimate

    Raises:
        ValueError: If labels is empty
    """
    if not labels:
        raise ValueError("Cannot aggregate an empty label list")

    top = labels[: len(RANK_WEIGHTS)]
    totals = {"calories": 0.0, "protein": 0.0, "carbs": 0.0, "fats": 0.0}
    detected_foods: list[str] = []

    for weight, item in zip(RANK_WEIGHTS, top):
        detected_foods.append(normalize_label(item.label))
        entry = table.lookup(item.label)
        if entry is None:
            continue
        totals["calories"] += entry.calories_per_100g * weight
        totals["protein"] += entry.protein_per_100g * weight
        totals["carbs"] += entry.carbs_per_100g * weight
        totals["fats"] += entry.fats_per_100g * weight

    if totals["calories"] == 0:
        logger.info(f"No reference match for {detected_foods}, using default values")
        totals = dict(UNMATCHED_DEFAULTS)

    confidence = sum(item.confidence for item in top) / len(top)

    estimate = MacroEstimate(
        calories=round(totals["calories"]),
        protein=round(totals["protein"], 1),
        carbs=round(totals["carbs"], 1),
        fats=round(totals["fats"], 1),
        confidence=confidence,
        detected_foods=detected_foods,
        description=f"Detected: {', '.join(detected_foods)}",
        degraded=False,
        source=source,
    )
    return clamp_estimate(estimate)


def from_record(record: NutritionRecord, *, source: str = "generative") -> MacroEstimate:
    """Convert a generative provider record into a clamped estimate."""
    values = clamp_values(
        record.calories,
        record.protein,
        record.carbs,
        record.fats,
        record.confidence,
    )
    return MacroEstimate(
        **values,
        detected_foods=list(record.detected_foods),
        description=record.description,
        degraded=False,
        source=source,
    )


def aggregate(
    output: LabelOutput | NutritionRecord,
    table: FoodReferenceTable = DEFAULT_REFERENCE_TABLE,
    *,
    source: str,
) -> MacroEstimate:
    """
    Turn any provider output into a validated estimate.

    Raises:
        ValueError: If the output carries nothing usable
    """
    if isinstance(output, LabelOutput):
        return aggregate_labels(output.labels, table, source=source)
    return from_record(output, source=source)
