"""
Stage Events

Structured observations emitted by fail-soft stages alongside their
degraded results. Each event is also written to the stage's logger.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class StageEvent:
    """One thing that happened inside a pipeline stage"""
    stage: str
    level: str  # "info", "warning", "error"
    message: str
    source: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "level": self.level,
            "message": self.message,
            "source": self.source,
        }


def record_event(
    events: List[StageEvent],
    logger: logging.Logger,
    stage: str,
    level: str,
    message: str,
    source: Optional[str] = None,
) -> StageEvent:
    """Append a StageEvent to ``events`` and log it at the matching level."""
    event = StageEvent(stage=stage, level=level, message=message, source=source)
    events.append(event)
    prefix = f"[{stage}:{source}]" if source else f"[{stage}]"
    logger.log(_LEVELS.get(level, logging.INFO), "%s %s", prefix, message)
    return event
