"""
Ordered threshold rule tables.

A rule table is an ordered list of ``(predicate, result)`` pairs evaluated
top-down; the first predicate that holds decides the result, and the
table's default applies when none does. The same tables drive per-value
lookups and whole-array colorisation.
"""
from dataclasses import dataclass
from typing import Any, Callable, Generic, Tuple, TypeVar
import numpy as np

T = TypeVar("T")

Color = Tuple[int, int, int]


@dataclass(frozen=True)
class RuleTable(Generic[T]):
    """Ordered ``(predicate, result)`` pairs with a fallback result."""
    name: str
    rules: Tuple[Tuple[Callable[..., Any], T], ...]
    default: T

    def evaluate(self, *values: Any) -> T:
        """
        Return the result of the first rule whose predicate holds.

        Args:
            *values: Arguments passed to every predicate

        Returns:
            Matching result, or the table default
        """
        for predicate, result in self.rules:
            if predicate(*values):
                return result
        return self.default


def colorize(table: "RuleTable[Color]", values: np.ndarray) -> np.ndarray:
    """
    Map an array of values to RGB colours through a rule table.

    ``np.select`` picks the first true condition per element, which
    preserves the table order exactly.

    Args:
        table: Colour rule table with single-argument predicates
        values: Array of index values

    Returns:
        uint8 array of shape ``values.shape + (3,)``
    """
    conditions = [predicate(values) for predicate, _ in table.rules]
    output = np.empty(values.shape + (3,), dtype=np.uint8)

    for channel in range(3):
        output[..., channel] = np.select(
            conditions,
            [color[channel] for _, color in table.rules],
            default=table.default[channel],
        )

    return output


NDVI_COLORS: RuleTable[Color] = RuleTable(
    name="ndvi",
    rules=(
        (lambda v: v < -0.2, (0, 0, 150)),      # water
        (lambda v: v < 0, (139, 90, 43)),       # bare soil / urban
        (lambda v: v < 0.2, (255, 255, 150)),   # sparse
        (lambda v: v < 0.4, (192, 255, 62)),    # moderate
        (lambda v: v < 0.6, (76, 187, 23)),     # good
    ),
    default=(0, 100, 0),                        # dense
)

NDWI_COLORS: RuleTable[Color] = RuleTable(
    name="ndwi",
    rules=(
        (lambda v: v > 0.3, (0, 100, 255)),     # high water content
        (lambda v: v > 0.1, (0, 200, 200)),
        (lambda v: v > -0.1, (100, 200, 100)),
        (lambda v: v > -0.3, (255, 200, 0)),    # mild stress
    ),
    default=(255, 50, 0),                       # severe stress
)

STRESS_COLORS: RuleTable[Color] = RuleTable(
    name="stress",
    rules=(
        (lambda v: v > 0.8, (0, 150, 0)),
        (lambda v: v > 0.6, (100, 200, 50)),
        (lambda v: v > 0.4, (255, 200, 0)),
        (lambda v: v > 0.2, (255, 100, 0)),
    ),
    default=(200, 0, 0),
)

# NIR-enhanced view: only the non-vegetation bands use fixed colours
SOIL_COLOR: Color = (180, 140, 100)
WATER_COLOR: Color = (50, 80, 150)
