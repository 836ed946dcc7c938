from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "FLIP_STARTED",
    "FLIP_RESOLVED",
    "WIN",
    "UPGRADE_PURCHASED",
    "INTERSTITIAL_OPENED",
    "ASCENDED",
    "RUN_WIPED",
]


@dataclass(frozen=True, slots=True)
class GameEvent:
    type: EventType
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, payload: dict[str, Any] | None = None) -> "GameEvent":
        return GameEvent(type=type, payload=payload or {}, ts=datetime.now(timezone.utc))
