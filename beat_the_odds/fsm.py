from __future__ import annotations

from dataclasses import dataclass, field

from statemachine import State, StateMachine

from beat_the_odds.catalog import UpgradeId


@dataclass(frozen=True, slots=True)
class FlipSnapshot:
    """Values frozen when a flip starts.

    Upgrades bought while the coin is in the air do not change the in-flight flip.
    """

    probability: float
    duration_ms: int
    automated: bool
    force_heads: bool
    buffed: bool
    prestige_level: int = 0
    upgrades: dict[UpgradeId, int] = field(default_factory=dict)


class FlipFSM(StateMachine):
    """Coin lifecycle: idle -> resolving -> idle.

    The engine applies the domain effects; the FSM only guards transitions so
    a second flip can never start while one is resolving.
    """

    idle = State("Idle", value="idle", initial=True)
    resolving = State("Resolving", value="resolving")

    begin = idle.to(resolving)
    settle = resolving.to(idle)

    def __init__(self) -> None:
        super().__init__()
        self.snapshot: FlipSnapshot | None = None
        self.started_at_ms: int | None = None

    @property
    def ready(self) -> bool:
        return self.current_state == self.idle

    def on_enter_idle(self) -> None:
        self.snapshot = None
        self.started_at_ms = None
