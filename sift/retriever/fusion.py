"""
Reciprocal Rank Fusion

Combines independent rankings into one ordering. Each item scores

    score(d) = sum_i  w_i / (rank_i(d) + K)

with 1-based ranks. An item absent from a ranking contributes 0 for it.
K dampens the dominance of rank-1 items; the default of 60 and equal
weights are fixed product defaults.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Hashable, List, Optional, Sequence

DEFAULT_K = 60

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class FusedItem:
    key: Hashable
    score: float
    ranks: Dict[str, int] = field(default_factory=dict)


def reciprocal_rank_fusion(
    rankings: Dict[str, Sequence[Hashable]],
    k: int = DEFAULT_K,
    weights: Optional[Dict[str, float]] = None,
    created_at: Optional[Callable[[Hashable], Optional[datetime]]] = None,
) -> List[FusedItem]:
    """
    Fuse named rankings with weighted RRF.

    Args:
        rankings: ranking name -> keys, best first
        k: damping constant, must be positive
        weights: ranking name -> weight (missing names weigh 1.0)
        created_at: key -> creation time, for tie-breaking (newest first)

    Returns:
        FusedItems sorted by score desc, then newest, then key
    """
    if k <= 0:
        raise ValueError(f"RRF constant k must be positive, got {k}")
    weights = weights or {}

    items: Dict[Hashable, FusedItem] = {}
    for name, keys in rankings.items():
        weight = weights.get(name, 1.0)
        seen = set()
        for rank, key in enumerate(keys, 1):
            # A key listed twice in one ranking counts at its best rank
            if key in seen:
                continue
            seen.add(key)
            item = items.setdefault(key, FusedItem(key=key, score=0.0))
            item.score += weight / (rank + k)
            item.ranks[name] = rank

    def sort_key(item: FusedItem):
        when = created_at(item.key) if created_at else None
        return (-item.score, -(when or _EPOCH).timestamp(), str(item.key))

    return sorted(items.values(), key=sort_key)
