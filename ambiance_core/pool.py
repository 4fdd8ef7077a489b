"""Resolve a container's items into the pool of placeable entries."""

from __future__ import annotations

import copy
import logging
from typing import List, MutableSequence, Optional, Sequence

import numpy as np

from .models import Area, Container, PoolEntry, make_item_key

logger = logging.getLogger(__name__)


def _full_item_area(item) -> Area:
    return Area(start=0.0, end=float(item.length), name=item.name or "Full")


def build_pool(
    container: Container,
    path: Sequence[int] = (),
    container_index: int = 1,
) -> List[PoolEntry]:
    """List every placeable entry of ``container`` in item order.

    Items with areas contribute one entry per area, other items one entry
    covering the whole item.
    """

    entries: List[PoolEntry] = []
    for item_index, item in enumerate(container.items, start=1):
        key = make_item_key(path, container_index, item_index)
        snapshot = copy.deepcopy(item)
        areas = list(snapshot.areas) or [_full_item_area(snapshot)]
        for area in areas:
            entries.append(
                PoolEntry(source_item=snapshot, area=area, source_index=item_index, key=key)
            )
    return entries


def pool_size(container: Container) -> int:
    return sum(max(1, len(item.areas)) for item in container.items)


def shuffle_entries(entries: MutableSequence, rng: np.random.Generator) -> MutableSequence:
    """Fisher-Yates shuffle ``entries`` in place and return it."""

    for i in range(len(entries) - 1, 0, -1):
        j = int(rng.integers(0, i + 1))
        entries[i], entries[j] = entries[j], entries[i]
    return entries


def resolve_pool(
    container: Container,
    max_pool_items: int,
    rng: Optional[np.random.Generator] = None,
    *,
    path: Sequence[int] = (),
    container_index: int = 1,
) -> List[PoolEntry]:
    """Return the entries to export for ``container``.

    ``max_pool_items`` must already be clamped by the caller. ``0`` or a
    bound at least as large as the pool returns the full pool in order;
    otherwise a random subset of that size is drawn from a shuffled copy.
    ``rng`` should be seeded once per export run so repeated exports draw
    different subsets.
    """

    entries = build_pool(container, path, container_index)
    if max_pool_items <= 0 or max_pool_items >= len(entries):
        return entries

    if rng is None:
        rng = np.random.default_rng()
    shuffle_entries(entries, rng)
    subset = entries[:max_pool_items]
    logger.debug(
        "Selected %d of %d pool entries for '%s'",
        len(subset), len(entries), container.name,
    )
    return subset


__all__ = ["build_pool", "pool_size", "shuffle_entries", "resolve_pool"]
