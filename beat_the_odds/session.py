from __future__ import annotations

import asyncio
import logging
import random

import redis

from beat_the_odds import game_store
from beat_the_odds.api.models import GameState, Identity, ScoreUpdate
from beat_the_odds.cheats import KeyAction, KeyInputHandler
from beat_the_odds.config import Settings
from beat_the_odds.core.events import GameEvent
from beat_the_odds.engine import COMPLIMENTS, GameEngine
from beat_the_odds.infra.redis_client import create_redis
from beat_the_odds.leaderboard import LeaderboardClient, LocalBoardStore
from beat_the_odds.scheduler import AsyncioScheduler, Scheduler
from beat_the_odds.websocket_hub import GameWebSocketHub


logger = logging.getLogger(__name__)


class GameSession:
    """Wires one engine to its storage, leaderboard and push channel.

    Every engine change is written through to Redis and announced on the hub.
    """

    def __init__(
        self,
        *,
        r: redis.Redis,
        scheduler: Scheduler,
        salt: str,
        leaderboard: LeaderboardClient | None = None,
        hub: GameWebSocketHub | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.r = r
        self.salt = salt
        self.scheduler = scheduler
        self.leaderboard = leaderboard
        self.local_board = LocalBoardStore(r=r)
        self.hub = hub or GameWebSocketHub()
        self._rng = rng or random.Random()
        self.keys = KeyInputHandler(on_wipe_cheaters=self._wipe_cheaters)

        self.engine = GameEngine(
            state=game_store.load_state(r=r, salt=salt),
            scheduler=scheduler,
            rng=self._rng,
            on_change=self._persist,
            on_event=self._on_event,
            score_sink=self._submit_scores,
            reload_identity=self._reload_identity,
            pick_compliment=self._pick_compliment,
        )

    def start(self) -> None:
        self.engine.start()
        logger.info(
            "Session started (prestige=%s, money=%s)",
            self.engine.state.prestige_level,
            self.engine.state.money,
        )

    async def aclose(self) -> None:
        self.engine.close()
        if self.leaderboard is not None:
            await self.leaderboard.aclose()

    # ---- engine callbacks ----

    def _persist(self, state: GameState) -> None:
        game_store.save_state(r=self.r, state=state, salt=self.salt)
        self.hub.publish({"type": "state_updated"})

    def _on_event(self, event: GameEvent) -> None:
        logger.debug("event %s %s", event.type, event.payload)
        if event.type == "WIN":
            self.hub.publish({"type": "win"})
        elif event.type == "RUN_WIPED":
            compliment = event.payload.get("compliment")
            if isinstance(compliment, str):
                game_store.mark_compliment_seen(r=self.r, text=compliment)

    def _reload_identity(self) -> Identity:
        return game_store.load_meta(r=self.r, salt=self.salt).identity

    def _pick_compliment(self) -> str:
        return game_store.pick_compliment(r=self.r, pool=COMPLIMENTS, rng=self._rng)

    def _submit_scores(self, updates: list[ScoreUpdate]) -> None:
        if self.leaderboard is None or not _loop_running():
            # Offline or driven without an event loop (scripts); keep the scores on this device.
            self.local_board.apply(updates)
            return
        self.leaderboard.submit_scores_nowait(updates)

    def _wipe_cheaters(self) -> None:
        if self.leaderboard is None or not _loop_running():
            logger.warning("Leaderboard unavailable; cheaters not wiped")
            return
        self.leaderboard.wipe_cheaters_nowait()

    # ---- operations the API needs beyond the engine ----

    def handle_key(self, *, code: str, in_text_input: bool = False) -> KeyAction:
        return self.keys.handle(engine=self.engine, code=code, in_text_input=in_text_input)

    def hard_reset(self, *, full: bool = False) -> None:
        """Delete the run save. `full` also deletes the player's stats and titles."""

        game_store.delete_run(r=self.r)
        if full:
            game_store.delete_meta(r=self.r)
        self.engine.wipe_run(reason="full_reset" if full else "reset")

    def export_save(self) -> str:
        return game_store.export_state(state=self.engine.state, salt=self.salt)

    def import_save(self, text: str) -> None:
        state = game_store.import_state(text=text, salt=self.salt)
        self.engine.restore(state)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def create_session(settings: Settings) -> GameSession:
    r = create_redis(settings.redis_url)
    leaderboard = LeaderboardClient(
        url=settings.leaderboard_url,
        backup_url=settings.leaderboard_backup_url,
        local=LocalBoardStore(r=r),
        timeout_s=settings.http_timeout_s,
    )
    return GameSession(
        r=r,
        scheduler=AsyncioScheduler(),
        salt=settings.save_salt,
        leaderboard=leaderboard,
    )
