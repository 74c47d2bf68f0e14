"""
Static food reference table.

Maps canonical food labels (as returned by the classifier provider) to
macro values per 100 g reference serving. Loaded once, read-only.
"""

import logging
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class FoodReferenceEntry(BaseModel):
    """Macro values for one food per 100 g serving."""

    model_config = ConfigDict(frozen=True)

    label: str
    calories_per_100g: float = Field(ge=0, description="Energy in kcal")
    protein_per_100g: float = Field(ge=0, description="Protein in grams")
    carbs_per_100g: float = Field(ge=0, description="Carbohydrates in grams")
    fats_per_100g: float = Field(ge=0, description="Fats in grams")


# label: (calories, protein, carbs, fats)
_REFERENCE_VALUES: dict[str, tuple[float, float, float, float]] = {
    "pizza": (266, 11, 33, 10),
    "hamburger": (295, 17, 30, 12),
    "salad": (20, 2, 4, 0),
    "rice": (130, 3, 28, 0),
    "chicken": (165, 31, 0, 3.6),
    "fish": (100, 20, 0, 2.5),
    "beef": (250, 26, 0, 15),
    "pasta": (131, 5, 25, 1.1),
    "bread": (265, 9, 49, 3.2),
    "eggs": (155, 13, 1.1, 11),
    "milk": (42, 3.4, 5, 1),
    "cheese": (113, 7, 0.4, 9),
    "apple": (52, 0.3, 14, 0.2),
    "banana": (89, 1.1, 23, 0.3),
    "orange": (47, 0.9, 12, 0.1),
    "tomato": (18, 0.9, 3.9, 0.2),
    "lettuce": (15, 1.4, 2.9, 0.1),
    "carrot": (41, 0.9, 10, 0.2),
    "potato": (77, 2, 17, 0.1),
    "broccoli": (34, 2.8, 7, 0.4),
    # Common food-101 classes
    "french fries": (312, 3.4, 41, 15),
    "steak": (271, 25, 0, 19),
    "sushi": (143, 6, 21, 3.5),
    "omelette": (154, 11, 0.6, 12),
    "fried rice": (163, 4.8, 29, 3.1),
    "caesar salad": (190, 6, 8, 15),
    "chicken wings": (290, 27, 0, 19),
    "ice cream": (207, 3.5, 24, 11),
    "spaghetti bolognese": (132, 7, 16, 4.5),
    "pancakes": (227, 6.4, 28, 10),
}


def normalize_label(label: str) -> str:
    """Lower-case a provider label and turn food-101 style underscores into spaces."""
    return " ".join(label.replace("_", " ").lower().split())


class FoodReferenceTable:
    """Read-only lookup from food label to reference macros."""

    def __init__(self, entries: list[FoodReferenceEntry]):
        self._entries = MappingProxyType(
            {normalize_label(entry.label): entry for entry in entries}
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, label: str) -> bool:
        return self.lookup(label) is not None

    @property
    def labels(self) -> list[str]:
        return list(self._entries)

    def lookup(self, label: str) -> FoodReferenceEntry | None:
        """
        Find the reference entry for a label.

        Args:
            label: Provider label, any case, spaces or underscores

        Returns:
            Matching entry, or None if the label is unknown
        """
        entry = self._entries.get(normalize_label(label))
        if entry is None:
            logger.debug(f"No reference entry for label '{label}'")
        return entry


def _build_default_table() -> FoodReferenceTable:
    entries = [
        FoodReferenceEntry(
            label=label,
            calories_per_100g=calories,
            protein_per_100g=protein,
            carbs_per_100g=carbs,
            fats_per_100g=fats,
        )
        for label, (calories, protein, carbs, fats) in _REFERENCE_VALUES.items()
    ]
    return FoodReferenceTable(entries)


DEFAULT_REFERENCE_TABLE = _build_default_table()
