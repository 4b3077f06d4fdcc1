from __future__ import annotations

import logging
from typing import Protocol

from .models import Decision, Result

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def on_decision_completed(self, decision: Decision, result: Result) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records completions in the application log."""

    def on_decision_completed(self, decision: Decision, result: Result) -> None:
        logger.info(
            "Decision %s (%s/%s) completed: restaurant=%s",
            decision.id,
            decision.type.value,
            decision.method.value,
            result.restaurant_id,
        )
