"""BYSETPOS selection over one period's candidate batch."""

from collections.abc import Sequence
from datetime import datetime

from .zoned import instant


def resolve_positions(length: int, positions: Sequence[int]) -> list[int]:
    """Map BYSETPOS values to in-range batch indices, dropping the rest.

    A positive position ``p`` selects index ``p - 1``; a negative one selects
    ``length + p``.
    """
    indices = []
    for position in positions:
        index = position - 1 if position > 0 else length + position
        if 0 <= index < length and index not in indices:
            indices.append(index)
    return indices


def select_by_set_pos(batch: Sequence[datetime], positions: Sequence[int]) -> list[datetime]:
    """Reduce a chronologically sorted batch to the requested positions.

    The result is sorted by instant regardless of the order positions were given in.
    """
    if not positions:
        return list(batch)
    chosen = [batch[index] for index in resolve_positions(len(batch), positions)]
    return sorted(chosen, key=instant)
