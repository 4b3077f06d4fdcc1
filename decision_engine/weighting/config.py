from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class WeightingConfig:
    decay_per_selection: float = float(os.getenv("DECISION_DECAY_PER_SELECTION", "0.05"))
    recency_window_days: float = float(os.getenv("DECISION_RECENCY_WINDOW_DAYS", "30"))
    min_weight: float = float(os.getenv("DECISION_MIN_WEIGHT", "0.1"))
    max_weight: float = float(os.getenv("DECISION_MAX_WEIGHT", "1.0"))


DEFAULT_WEIGHTING_CONFIG = WeightingConfig()
