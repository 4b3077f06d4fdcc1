from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, Field

from .config import DEFAULT_WEIGHTING_CONFIG, WeightingConfig

_SECONDS_PER_DAY = 24 * 60 * 60


class SelectionStatistic(BaseModel):
    restaurant_id: str
    name: str | None = None
    selection_count: int = Field(default=0, ge=0)
    last_selected: datetime | None = None
    current_weight: float = 1.0
    days_until_full_weight: int = 0


def days_since(last_selected: datetime | None, now: datetime) -> float | None:
    """Fractional days between *last_selected* and *now*, never negative."""
    if last_selected is None:
        return None
    elapsed = (now - last_selected).total_seconds() / _SECONDS_PER_DAY
    return max(0.0, elapsed)


def compute_weight(
    selection_count: int,
    last_selected: datetime | None,
    now: datetime,
    config: WeightingConfig = DEFAULT_WEIGHTING_CONFIG,
) -> float:
    """
    Weight in ``[min_weight, max_weight]`` for one restaurant.

    Each past selection costs ``decay_per_selection``; the penalty is paid
    back linearly over ``recency_window_days`` after the latest selection.
    A restaurant that was never selected keeps the full weight.
    """
    if selection_count <= 0:
        return config.max_weight

    penalty = config.decay_per_selection * selection_count
    elapsed = days_since(last_selected, now)
    recency_days = min(elapsed, config.recency_window_days) if elapsed is not None else 0.0
    recovery = (recency_days / config.recency_window_days) * penalty

    weight = 1.0 - penalty + recovery
    return max(config.min_weight, min(config.max_weight, weight))


def weight_for(
    stat: SelectionStatistic,
    now: datetime,
    config: WeightingConfig = DEFAULT_WEIGHTING_CONFIG,
) -> float:
    return compute_weight(stat.selection_count, stat.last_selected, now, config)


def days_until_full_weight(
    last_selected: datetime | None,
    now: datetime,
    config: WeightingConfig = DEFAULT_WEIGHTING_CONFIG,
) -> int:
    elapsed = days_since(last_selected, now)
    if elapsed is None:
        return 0
    return max(0, math.ceil(config.recency_window_days - elapsed))
