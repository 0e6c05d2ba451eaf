"""Stock sheet selection by expected material efficiency."""

from typing import List

from nestlab.nesting.geometry import area
from nestlab.nesting.models import Part, Sheet
from nestlab.utils import get_logger

logger = get_logger("nesting.sheet_selector")

MIN_EFFICIENCY = 40.0  # percent
MAX_EFFICIENCY = 90.0


def select_optimal_sheet_sizes(
    parts: List[Part],
    available_sheets: List[Sheet],
    min_efficiency: float = MIN_EFFICIENCY,
    max_efficiency: float = MAX_EFFICIENCY,
) -> List[Sheet]:
    """
    Pick the sheets whose area suits the total part area.

    A sheet qualifies when the parts would cover between `min_efficiency`
    and `max_efficiency` percent of it. If none qualifies the largest sheet
    is returned, so the result is only empty when no sheets are given.
    """
    if not available_sheets:
        return []

    total_part_area = sum(area(part) * part.quantity for part in parts)

    selected = []
    for sheet in available_sheets:
        efficiency = total_part_area / area(sheet) * 100.0
        if min_efficiency <= efficiency <= max_efficiency:
            selected.append(sheet)

    if not selected:
        largest = max(available_sheets, key=area)
        logger.debug(f"No sheet in {min_efficiency:.0f}-{max_efficiency:.0f}% range, using largest: {largest.id}")
        selected.append(largest)

    return selected
