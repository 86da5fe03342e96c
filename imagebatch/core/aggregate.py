from __future__ import annotations

from typing import Sequence

from imagebatch.domain import Item


def redistribute(items: Sequence[Item], outputs: Sequence[str | None]) -> list[Item]:
    """Slice the pool's flat, ordered output list back into per-item lists.

    Item boundaries are recovered from each item's reference count. ``None``
    entries mark per-reference failures; they stay in ``Item.outcomes`` and
    drop out of ``Item.output_urls``, which can therefore be shorter than the
    source list.
    """

    expected = sum(item.reference_count for item in items)
    if len(outputs) != expected:
        raise ValueError(f"pool returned {len(outputs)} outputs for {expected} references")

    offset = 0
    for item in items:
        item.outcomes = list(outputs[offset : offset + item.reference_count])
        offset += item.reference_count
    return list(items)
