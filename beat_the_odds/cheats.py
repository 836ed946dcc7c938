from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum

from beat_the_odds.engine import GameEngine


logger = logging.getLogger(__name__)

DEBUG_FRAGMENTS = 5
DEBUG_MONEY = 10_000
WIPE_SEQUENCE: tuple[str, ...] = ("KeyW", "KeyI", "KeyP", "KeyE")


class KeyAction(StrEnum):
    ignored = "ignored"
    flip = "flip"
    force_heads = "force_heads"
    grant_money = "grant_money"
    wipe_cheaters = "wipe_cheaters"


class KeyInputHandler:
    """Keyboard surface: Space flips, plus a few debug keys.

    Every debug key marks the run as cheated. Typing W, I, P, E in a row asks
    the leaderboard to drop every entry named "cheater".
    """

    def __init__(self, *, on_wipe_cheaters: Callable[[], None]) -> None:
        self._on_wipe_cheaters = on_wipe_cheaters
        self._typed: list[str] = []

    def _track_sequence(self, code: str) -> bool:
        self._typed = [*self._typed, code][-len(WIPE_SEQUENCE):]
        if tuple(self._typed) == WIPE_SEQUENCE:
            self._typed = []
            return True
        return False

    def handle(self, *, engine: GameEngine, code: str, in_text_input: bool = False) -> KeyAction:
        if in_text_input:
            return KeyAction.ignored

        if self._track_sequence(code):
            logger.info("Wipe-cheaters sequence entered")
            self._on_wipe_cheaters()
            return KeyAction.wipe_cheaters

        if code == "Space":
            engine.request_flip()
            return KeyAction.flip
        if code == "KeyQ":
            engine.mark_cheated()
            engine.request_flip(force_heads=True)
            engine.grant_fragments(DEBUG_FRAGMENTS)
            return KeyAction.force_heads
        if code == "KeyZ":
            engine.grant_money(DEBUG_MONEY)
            return KeyAction.grant_money
        return KeyAction.ignored
