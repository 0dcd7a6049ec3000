# positions.py — Dense position arithmetic shared by moves, inserts and deletes
"""
Every function here is pure: it receives the current rows of one column and
returns the PositionUpdate rows needed to keep positions ``0..n-1`` after a
single insert, removal or in-place reorder. Untouched rows keep their
relative order. Callers apply the result with one batch call.
"""

from typing import Iterable, List, Optional, Protocol, Sequence

from schemas import PositionUpdate


class Positioned(Protocol):
    id: str
    position: int


def _column_of(item) -> Optional[str]:
    return getattr(item, "board_column_id", None)


def clamp_position(position: int, size: int) -> int:
    """Clamp an insertion index into ``[0, size]``."""
    return max(0, min(position, size))


def shift_for_insert(
    items: Iterable[Positioned], position: int, exclude_id: Optional[str] = None
) -> List[PositionUpdate]:
    """Open a slot at ``position``: every other row at or after it moves +1."""
    return [
        PositionUpdate(id=item.id, position=item.position + 1, board_column_id=_column_of(item))
        for item in items
        if item.id != exclude_id and item.position >= position
    ]


def close_gap(
    items: Iterable[Positioned], removed_position: int, exclude_id: Optional[str] = None
) -> List[PositionUpdate]:
    """Close the hole left at ``removed_position``: every row after it moves -1."""
    return [
        PositionUpdate(id=item.id, position=item.position - 1, board_column_id=_column_of(item))
        for item in items
        if item.id != exclude_id and item.position > removed_position
    ]


def reorder_within(
    items: Iterable[Positioned], moving_id: str, old: int, new: int
) -> List[PositionUpdate]:
    """Move one row from ``old`` to ``new`` inside the same column."""
    if old == new:
        return []
    updates = []
    for item in items:
        if item.id == moving_id:
            continue
        if old < new and old < item.position <= new:
            updates.append(
                PositionUpdate(id=item.id, position=item.position - 1, board_column_id=_column_of(item))
            )
        elif old > new and new <= item.position < old:
            updates.append(
                PositionUpdate(id=item.id, position=item.position + 1, board_column_id=_column_of(item))
            )
    return updates


def renumber(
    items: Sequence[Positioned], column_id: Optional[str] = None, offset: int = 0
) -> List[PositionUpdate]:
    """Assign ``offset..offset+n-1`` in the given order, returning only rows that change.

    With ``column_id`` the rows are also re-homed into that column.
    """
    return [
        PositionUpdate(id=item.id, position=offset + index, board_column_id=column_id or _column_of(item))
        for index, item in enumerate(items)
        if item.position != offset + index or (column_id is not None and _column_of(item) != column_id)
    ]


def is_dense(positions: Iterable[int]) -> bool:
    ordered = sorted(positions)
    return ordered == list(range(len(ordered)))
