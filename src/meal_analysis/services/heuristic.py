"""
Keyword heuristic for meals no provider could analyze.

Matches the user's free-text description against a fixed keyword table.
Pure and deterministic: no I/O, always returns an estimate.
"""

from meal_analysis.models.analysis import MacroEstimate

# Checked in order; the first keyword contained in the description wins.
# keyword: (calories, protein, carbs, fats)
KEYWORD_ESTIMATES: tuple[tuple[str, tuple[float, float, float, float]], ...] = (
    ("huevos", (150, 12, 1, 10)),
    ("pan", (80, 3, 15, 1)),
    ("leche", (120, 8, 12, 5)),
    ("café", (5, 0, 1, 0)),
    ("comida casera", (300, 15, 35, 12)),
    ("ensalada", (100, 5, 10, 5)),
    ("carne", (250, 25, 0, 15)),
    ("pescado", (200, 20, 0, 8)),
    ("pasta", (200, 7, 40, 1)),
    ("arroz", (150, 3, 30, 0)),
)

GENERIC_ESTIMATE = (250.0, 12.0, 30.0, 8.0)

MATCH_CONFIDENCE = 0.6
GENERIC_CONFIDENCE = 0.4

# Used when there is no description to match
DEFAULT_ESTIMATE = (200.0, 10.0, 25.0, 6.0)
DEFAULT_CONFIDENCE = 0.3


def estimate(description: str | None) -> MacroEstimate:
    """
    Estimate macros from a meal description.

    Args:
        description: Free-text description, any case

    Returns:
        Degraded MacroEstimate from the first matching keyword, or the
        generic estimate when nothing matches
    """
    text = (description or "").strip()
    lowered = text.lower()

    for keyword, (calories, protein, carbs, fats) in KEYWORD_ESTIMATES:
        if keyword in lowered:
            return MacroEstimate(
                calories=calories,
                protein=protein,
                carbs=carbs,
                fats=fats,
                confidence=MATCH_CONFIDENCE,
                detected_foods=[keyword],
                description=f"Estimated from description: {text}",
                degraded=True,
                source="heuristic",
            )

    calories, protein, carbs, fats = GENERIC_ESTIMATE
    return MacroEstimate(
        calories=calories,
        protein=protein,
        carbs=carbs,
        fats=fats,
        confidence=GENERIC_CONFIDENCE,
        detected_foods=[text] if text else [],
        description=f"Generic estimate: {text}" if text else "Generic estimate",
        degraded=True,
        source="heuristic",
    )


def default_estimate() -> MacroEstimate:
    """Fixed generic estimate returned when nothing else is available."""
    calories, protein, carbs, fats = DEFAULT_ESTIMATE
    return MacroEstimate(
        calories=calories,
        protein=protein,
        carbs=carbs,
        fats=fats,
        confidence=DEFAULT_CONFIDENCE,
        detected_foods=["meal"],
        description="No specific food could be detected",
        degraded=True,
        source="default",
    )
