"""Turn a best candidate into a validated sheet layout.

Instances the candidate could not place are repaired with a bottom-left
search on the same sheet, then on extra sheets of the same stock.
"""

from typing import List, Tuple

from nestlab.nesting.fitness import FitnessEvaluator
from nestlab.nesting.geometry import allowed_rotations, find_best_placement, rotated_size
from nestlab.nesting.models import Candidate, OptimizationResult, Placement
from nestlab.utils import format_area, get_logger

logger = get_logger("nesting.layout")


def build_result(evaluator: FitnessEvaluator, candidate: Candidate) -> OptimizationResult:
    """
    Build a result from a candidate.

    Every placement in the result lies inside its sheet and clears every
    other placement on that sheet. Instances are tracked by position in
    the instance list, so parts sharing an id are still placed separately.
    """
    instances = evaluator.instances
    sheet = evaluator.sheet
    config = evaluator.config

    sheets: List[List[Tuple[int, Placement]]] = [evaluator.decode_indexed(candidate)]
    placed_indices = {index for index, _ in sheets[0]}
    unplaced: List[str] = []

    for index, instance in enumerate(instances):
        if index in placed_indices:
            continue

        rotations = allowed_rotations(instance, config.allow_rotation)
        placed = False
        for sheet_index, existing in enumerate(sheets):
            spot = find_best_placement(
                instance, sheet.size, [p for _, p in existing], config.min_part_distance, rotations
            )
            if spot is not None:
                existing.append((index, _make_placement(instance, sheet_index, spot)))
                placed = True
                break

        if not placed:
            # Open another sheet only if the instance fits on an empty one
            spot = find_best_placement(instance, sheet.size, [], config.min_part_distance, rotations)
            if spot is None:
                logger.warning(f"{instance.instance_id} does not fit on sheet {sheet.id}")
                unplaced.append(instance.instance_id)
                continue
            sheets.append([(index, _make_placement(instance, len(sheets), spot))])

    used = [entries for entries in sheets if entries]

    result = OptimizationResult()
    for sheet_index, entries in enumerate(used):
        placements = [p for _, p in sorted(entries, key=lambda entry: entry[0])]
        for placement in placements:
            placement.sheet_index = sheet_index
        result.used_sheets.append(sheet)
        result.part_positions.append([(p.x, p.y) for p in placements])
        result.part_rotations.append([p.rotation for p in placements])
        result.placements.extend(placements)

    result.unplaced_parts = unplaced
    result.total_sheets_used = len(used)
    result.total_cost = sheet.cost * len(used)

    used_area = sheet.area * len(used)
    placed_area = sum(p.area for p in result.placements)
    if used_area > 0:
        result.total_efficiency = max(0.0, min(100.0, placed_area / used_area * 100.0))
    result.waste_area = max(0.0, used_area - placed_area)

    return result


def _make_placement(instance, sheet_index: int, spot) -> Placement:
    (x, y), rotation = spot
    width, height = rotated_size(instance.width, instance.height, rotation)
    return Placement(
        instance_id=instance.instance_id,
        part_id=instance.part.id,
        sheet_index=sheet_index,
        x=x,
        y=y,
        rotation=rotation,
        width=width,
        height=height,
    )


def export_layout(result: OptimizationResult) -> str:
    """Export a result as a text cutting report."""
    lines = [
        "; Cutting layout",
        f"; Algorithm: {result.algorithm or 'n/a'}",
        f"; Sheets used: {result.total_sheets_used}",
        f"; Efficiency: {result.total_efficiency:.1f}%",
        f"; Total cost: ${result.total_cost:.2f}",
        f"; Waste: {format_area(result.waste_area)}",
        "",
    ]

    for sheet_index, sheet in enumerate(result.used_sheets):
        lines.append(f"; Sheet {sheet_index + 1}: {sheet.name or sheet.id} ({sheet.width}x{sheet.height})")
        for placement in result.placements:
            if placement.sheet_index != sheet_index:
                continue
            lines.append(f";   {placement.instance_id}")
            lines.append(f";     Position: ({placement.x:.3f}, {placement.y:.3f})")
            lines.append(f";     Size: {placement.width:.3f}x{placement.height:.3f}")
            lines.append(f";     Rotation: {placement.rotation:.0f}°")
        lines.append("")

    if result.unplaced_parts:
        lines.append(f"; Unplaced parts ({len(result.unplaced_parts)}):")
        for instance_id in result.unplaced_parts:
            lines.append(f";   - {instance_id}")

    if result.error_message:
        lines.append(f"; Error: {result.error_message}")

    return "\n".join(lines)
