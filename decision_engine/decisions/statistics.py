from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

import pandas as pd

from ..weighting.config import DEFAULT_WEIGHTING_CONFIG, WeightingConfig
from ..weighting.weights import (
    SelectionStatistic,
    compute_weight,
    days_until_full_weight,
)
from .models import Decision

NameResolver = Callable[[str], "str | None"]


def _selections_frame(decisions: Iterable[Decision]) -> pd.DataFrame:
    rows = [
        {"restaurant_id": d.result.restaurant_id, "selected_at": d.result.selected_at}
        for d in decisions
        if d.result is not None
    ]
    return pd.DataFrame(rows, columns=["restaurant_id", "selected_at"])


def build_statistics(
    completed: Iterable[Decision],
    now: datetime,
    config: WeightingConfig = DEFAULT_WEIGHTING_CONFIG,
    resolve_name: NameResolver | None = None,
) -> dict[str, SelectionStatistic]:
    """
    Aggregate completed decisions into one statistic per selected restaurant.

    Only restaurants that were chosen at least once appear in the result.
    """
    df = _selections_frame(completed)
    if df.empty:
        return {}

    grouped = df.groupby("restaurant_id").agg(
        selection_count=("selected_at", "count"),
        last_selected=("selected_at", "max"),
    )

    stats: dict[str, SelectionStatistic] = {}
    for restaurant_id, selection_count, last in grouped.itertuples():
        rid = str(restaurant_id)
        last_selected = pd.Timestamp(last).to_pydatetime()
        count = int(selection_count)
        stats[rid] = SelectionStatistic(
            restaurant_id=rid,
            name=resolve_name(rid) if resolve_name else None,
            selection_count=count,
            last_selected=last_selected,
            current_weight=compute_weight(count, last_selected, now, config),
            days_until_full_weight=days_until_full_weight(last_selected, now, config),
        )
    return stats


def weights_for_collection(
    restaurant_ids: Iterable[str],
    stats: dict[str, SelectionStatistic],
    resolve_name: NameResolver | None = None,
) -> list[SelectionStatistic]:
    """Every restaurant in the collection, heaviest first, never-selected ones included."""
    rows: list[SelectionStatistic] = []
    for rid in restaurant_ids:
        stat = stats.get(rid)
        if stat is None:
            stat = SelectionStatistic(
                restaurant_id=rid,
                name=resolve_name(rid) if resolve_name else None,
            )
        rows.append(stat)
    rows.sort(key=lambda s: (-s.current_weight, s.restaurant_id))
    return rows
