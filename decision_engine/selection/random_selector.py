from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Sequence

import numpy as np

from ..decisions.errors import EmptyCollectionError
from ..weighting.config import DEFAULT_WEIGHTING_CONFIG, WeightingConfig
from ..weighting.weights import SelectionStatistic, weight_for
from .rng import Rng

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    restaurant_id: str
    reasoning: str
    weights: dict[str, float] = field(default_factory=dict)
    probabilities: dict[str, float] = field(default_factory=dict)


def select_restaurant(
    restaurant_ids: Sequence[str],
    statistics: Mapping[str, SelectionStatistic],
    rng: Rng,
    now: datetime,
    config: WeightingConfig = DEFAULT_WEIGHTING_CONFIG,
    for_group: bool = False,
) -> Selection:
    """
    Pick one restaurant from *restaurant_ids* by weighted random draw.

    Restaurants missing from *statistics* have never been selected and keep
    the full weight. The draw ``r ~ U(0, total)`` lands on the first
    restaurant whose cumulative weight exceeds ``r``.
    """
    if not restaurant_ids:
        raise EmptyCollectionError()

    stats = [
        statistics.get(rid) or SelectionStatistic(restaurant_id=rid)
        for rid in restaurant_ids
    ]
    weights = np.array([weight_for(s, now, config) for s in stats], dtype=float)
    cumulative = np.cumsum(weights)
    total = float(cumulative[-1])

    r = rng.uniform() * total
    index = int(np.searchsorted(cumulative, r, side="right"))
    # Guard against r landing exactly on the total through float rounding
    index = min(index, len(restaurant_ids) - 1)

    chosen = stats[index]
    chosen_weight = float(weights[index])
    algorithm = "weighted random algorithm for group" if for_group else "weighted random algorithm"
    reasoning = (
        f"Selected using {algorithm}. "
        f"Weight: {chosen_weight:.2f}, Previous selections: {chosen.selection_count}"
    )

    logger.debug(
        "Random draw %.4f of %.4f selected %s (weight %.2f)",
        r, total, chosen.restaurant_id, chosen_weight,
    )

    return Selection(
        restaurant_id=chosen.restaurant_id,
        reasoning=reasoning,
        weights={rid: float(w) for rid, w in zip(restaurant_ids, weights)},
        probabilities={rid: float(w / total) for rid, w in zip(restaurant_ids, weights)},
    )
