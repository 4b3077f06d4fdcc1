from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Load .env from project root
load_dotenv(_PROJECT_ROOT / ".env")


@dataclass(frozen=True)
class DecisionConfig:
    default_deadline_hours: float = float(os.getenv("DECISION_DEADLINE_HOURS", "24"))
    default_history_limit: int = 100
    max_history_limit: int = 500
    store_timeout_seconds: float = float(os.getenv("DECISION_STORE_TIMEOUT", "5.0"))
    data_dir: Path = Path(os.getenv("DECISION_DATA_DIR", str(_PROJECT_ROOT / "data")))
    restaurants_filename: str = "restaurants.csv"
    collections_filename: str = "collections.csv"
    group_admins_filename: str = "group_admins.csv"

    @property
    def restaurants_path(self) -> Path:
        return self.data_dir / self.restaurants_filename

    @property
    def collections_path(self) -> Path:
        return self.data_dir / self.collections_filename

    @property
    def group_admins_path(self) -> Path:
        return self.data_dir / self.group_admins_filename


DEFAULT_DECISION_CONFIG = DecisionConfig()
