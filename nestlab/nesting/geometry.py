"""Placement geometry for sheet nesting.

Parts are approximated by the axis-aligned bounding box of the rotated
rectangle. Rotations are given in degrees.
"""

import math
from typing import List, NamedTuple, Optional, Sequence, Tuple


ROTATIONS = (0.0, 90.0, 180.0, 270.0)
DEFAULT_GRID_STEP = 0.5  # 1/2 inch
EPSILON = 1e-9


class Rect(NamedTuple):
    """Axis-aligned rectangle anchored at its lower-left corner."""
    x: float
    y: float
    width: float
    height: float


def area(item) -> float:
    """Area of a part, part instance or sheet."""
    return item.width * item.height


def rotated_size(width: float, height: float, rotation: float) -> Tuple[float, float]:
    """Bounding box of a width x height rectangle rotated by `rotation` degrees."""
    theta = math.radians(rotation)
    cos_t = abs(math.cos(theta))
    sin_t = abs(math.sin(theta))
    # Round away float noise so 90 degree turns swap sides exactly
    return (
        round(width * cos_t + height * sin_t, 9),
        round(width * sin_t + height * cos_t, 9),
    )


def allowed_rotations(part, allow_rotation: bool = True) -> Tuple[float, ...]:
    """Rotations a part may take."""
    if allow_rotation and getattr(part, "can_rotate", True):
        return ROTATIONS
    return (0.0,)


def rects_overlap(a, b) -> bool:
    """Check if two rectangles overlap. Touching edges do not count."""
    return (
        a.x < b.x + b.width - EPSILON and a.x + a.width > b.x + EPSILON
        and a.y < b.y + b.height - EPSILON and a.y + a.height > b.y + EPSILON
    )


def center_distance(a, b) -> float:
    """Euclidean distance between rectangle centers."""
    return math.hypot(
        (a.x + a.width / 2) - (b.x + b.width / 2),
        (a.y + a.height / 2) - (b.y + b.height / 2),
    )


def validate_placement(
    part,
    position: Tuple[float, float],
    rotation: float,
    sheet_size: Tuple[float, float],
    existing: Sequence = (),
    min_part_distance: float = 0.0,
) -> bool:
    """
    Check if a part can be placed at a position on a sheet.

    Args:
        part: Part or part instance (anything with width and height)
        position: Lower-left corner (x, y)
        rotation: Rotation in degrees
        sheet_size: Sheet (width, height)
        existing: Rectangles already placed on the sheet
        min_part_distance: Minimum center-to-center distance to every placed part

    Returns:
        True if the rotated part lies inside the sheet without collisions
    """
    x, y = position
    width, height = rotated_size(part.width, part.height, rotation)
    sheet_width, sheet_height = sheet_size

    if x < -EPSILON or y < -EPSILON:
        return False
    if x + width > sheet_width + EPSILON or y + height > sheet_height + EPSILON:
        return False

    candidate = Rect(x, y, width, height)
    for other in existing:
        if rects_overlap(candidate, other):
            return False
        if center_distance(candidate, other) < min_part_distance:
            return False

    return True


def find_valid_placements(
    part,
    sheet_size: Tuple[float, float],
    existing: Sequence = (),
    min_part_distance: float = 0.0,
    step: float = DEFAULT_GRID_STEP,
    rotations: Sequence[float] = ROTATIONS,
) -> List[Tuple[float, float]]:
    """
    Exhaustive grid search for every position with at least one valid rotation.

    An empty list means the part cannot go on this sheet.
    """
    if step <= 0:
        raise ValueError("step must be positive")

    sheet_width, sheet_height = sheet_size
    columns = int(math.ceil(sheet_width / step))
    rows = int(math.ceil(sheet_height / step))

    valid = []
    for i in range(columns):
        x = i * step
        for j in range(rows):
            y = j * step
            for rotation in rotations:
                if validate_placement(part, (x, y), rotation, sheet_size, existing, min_part_distance):
                    valid.append((x, y))
                    break  # one valid rotation is enough

    return valid


def find_best_placement(
    part,
    sheet_size: Tuple[float, float],
    existing: Sequence = (),
    min_part_distance: float = 0.0,
    rotations: Sequence[float] = ROTATIONS,
) -> Optional[Tuple[Tuple[float, float], float]]:
    """
    Find a bottom-left position for a part.

    Candidate corners are the sheet origin and the right and top edges of
    every placed rectangle. The lowest, then leftmost, valid corner wins.

    Returns:
        ((x, y), rotation) or None if the part does not fit
    """
    gap = min_part_distance
    xs = {0.0}
    ys = {0.0}
    for other in existing:
        xs.add(other.x + other.width + gap)
        ys.add(other.y + other.height + gap)
        xs.add(other.x)
        ys.add(other.y)

    # 180/270 share the bounding box of 0/90
    seen = set()
    unique_rotations = []
    for rotation in rotations:
        size = rotated_size(part.width, part.height, rotation)
        if size not in seen:
            seen.add(size)
            unique_rotations.append(rotation)

    for y in sorted(ys):
        for x in sorted(xs):
            for rotation in unique_rotations:
                if validate_placement(part, (x, y), rotation, sheet_size, existing, min_part_distance):
                    return (x, y), rotation

    return None
