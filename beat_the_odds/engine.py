from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

from beat_the_odds import economy
from beat_the_odds.api.models import (
    HISTORY_LIMIT,
    GameState,
    GameView,
    Identity,
    LeaderboardCategory,
    LeaderboardEntry,
    Outcome,
    ScoreUpdate,
    ShopItemView,
)
from beat_the_odds.autoplay import AutoBuyLoop, AutoFlipLoop
from beat_the_odds.catalog import UPGRADES, Currency, UpgradeId, effective_max_level, level_of, next_cost
from beat_the_odds.core.events import EventType, GameEvent
from beat_the_odds.fsm import FlipFSM, FlipSnapshot
from beat_the_odds.guards import GuardContext, is_unlocked, pipeline_for
from beat_the_odds.prestige import ascend
from beat_the_odds.scheduler import Scheduler, TimerHandle
from beat_the_odds.shop import apply_purchase
from beat_the_odds.titles import display_title, merge_identity, refresh_titles, set_active_title


logger = logging.getLogger(__name__)

# Scores from runs that used debug keys are filed under this name.
CHEATER_NAME = "CHEATER"

COMPLIMENTS: tuple[str, ...] = (
    "You have a wonderful smile.",
    "Your persistence is admirable.",
    "You bring light to those around you.",
    "You are capable of amazing things.",
    "Your creative instincts are sharp.",
    "You are a great listener.",
    "You have a unique perspective.",
    "Your kindness is a gift.",
    "You are stronger than you know.",
    "Your potential is limitless.",
)

ScoreSink = Callable[[list[ScoreUpdate]], object]


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class GameEngine:
    """Owns the run state and every transition applied to it.

    All entry points are synchronous and run on the scheduler's thread. Invalid
    requests (busy coin, won run, unaffordable item) return False and change nothing.
    """

    def __init__(
        self,
        *,
        state: GameState,
        scheduler: Scheduler,
        rng: random.Random | None = None,
        on_change: Callable[[GameState], None] | None = None,
        on_event: Callable[[GameEvent], None] | None = None,
        score_sink: ScoreSink | None = None,
        reload_identity: Callable[[], Identity] | None = None,
        pick_compliment: Callable[[], str] | None = None,
        now_ms: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        self.state = state
        self.fsm = FlipFSM()
        self._scheduler = scheduler
        self._rng = rng or random.Random()
        self._on_change = on_change
        self._on_event = on_event
        self._score_sink = score_sink
        self._reload_identity = reload_identity
        self._pick_compliment = pick_compliment
        self._now_ms = now_ms

        self._flip_timer: TimerHandle | None = None
        self._win_raised = state.streak >= economy.win_streak(state.is_hard_mode)
        self._interstitial: str | None = None
        self._closed = False
        # Reason the most recent guarded request was refused.
        self.last_rejection: str | None = None

        self.auto_flip = AutoFlipLoop(
            scheduler=scheduler,
            should_flip=self._auto_flip_ready,
            flip=lambda: self.request_flip(automated=True),
            now_ms=now_ms,
        )
        self.auto_buy = AutoBuyLoop(
            scheduler=scheduler,
            is_active=self._auto_buy_ready,
            try_buy=self.buy_upgrade,
        )

    # ---- lifecycle ----

    def start(self) -> None:
        self.auto_flip.start()
        self.auto_buy.rearm()

    def close(self) -> None:
        """Cancel every timer owned by this run."""

        self._closed = True
        self.auto_flip.stop()
        self.auto_buy.stop()
        if self._flip_timer is not None:
            self._flip_timer.cancel()
            self._flip_timer = None

    # ---- derived values ----

    @property
    def is_flipping(self) -> bool:
        return not self.fsm.ready

    @property
    def has_won(self) -> bool:
        return self._win_raised

    @property
    def pending_interstitial(self) -> str | None:
        return self._interstitial

    @property
    def probability(self) -> float:
        s = self.state
        return economy.probability(s.upgrades, s.prestige_level, s.is_hard_mode)

    @property
    def flip_duration_ms(self) -> int:
        return economy.flip_duration_ms(self.state.upgrades, self.state.prestige_level)

    @property
    def win_streak(self) -> int:
        return economy.win_streak(self.state.is_hard_mode)

    def _guard_ctx(self, action: str, upgrade_id: UpgradeId | None = None) -> GuardContext:
        return GuardContext(
            action=action,
            state=self.state,
            is_idle=self.fsm.ready,
            has_won=self._win_raised,
            interstitial_pending=self._interstitial is not None,
            upgrade_id=upgrade_id,
        )

    def _reject(self, action: str, upgrade_id: UpgradeId | None = None) -> str | None:
        if self._closed:
            reason = "engine is closed"
        else:
            reason = pipeline_for(action).first_rejection(ctx=self._guard_ctx(action, upgrade_id))
        self.last_rejection = reason
        if reason is not None:
            logger.debug("Rejected %s: %s", action, reason)
        return reason

    # ---- flips ----

    def request_flip(self, *, automated: bool = False, force_heads: bool = False) -> bool:
        if self._reject("flip") is not None:
            return False

        s = self.state
        if force_heads:
            s.run_flags.has_cheated = True
        if automated:
            s.run_flags.is_purist_run = False

        buffed = s.is_hard_mode and level_of(s.upgrades, UpgradeId.HARD_MODE_BUFF) > 0
        if buffed:
            s.upgrades[UpgradeId.HARD_MODE_BUFF] -= 1

        snap = FlipSnapshot(
            probability=economy.probability(s.upgrades, s.prestige_level, s.is_hard_mode, buffed=buffed),
            duration_ms=self.flip_duration_ms,
            automated=automated,
            force_heads=force_heads,
            buffed=buffed,
            prestige_level=s.prestige_level,
            upgrades=dict(s.upgrades),
        )
        self.fsm.begin()
        self.fsm.snapshot = snap
        self.fsm.started_at_ms = self._now_ms()
        self._flip_timer = self._scheduler.call_later(snap.duration_ms, self._resolve_flip)

        self._emit("FLIP_STARTED", {"automated": automated, "duration_ms": snap.duration_ms})
        self._changed()
        return True

    def _resolve_flip(self) -> None:
        self._flip_timer = None
        snap = self.fsm.snapshot
        if self._closed or snap is None or self.fsm.ready:
            return

        s = self.state
        heads = snap.force_heads or self._rng.random() < snap.probability
        if heads:
            s.streak += 1
            earned = economy.payout(s.streak, snap.upgrades, snap.prestige_level)
        else:
            s.streak = 0
            earned = economy.passive_income(snap.upgrades, snap.prestige_level)

        s.money += earned
        s.max_streak = max(s.max_streak, s.streak)
        s.total_flips += 1
        outcome = Outcome.heads if heads else Outcome.tails
        s.history = [outcome, *s.history][:HISTORY_LIMIT]

        self.fsm.settle()
        self._emit(
            "FLIP_RESOLVED",
            {"outcome": outcome.value, "earned": earned, "streak": s.streak, "automated": snap.automated},
        )

        if heads and not self._win_raised and s.streak >= economy.win_streak(s.is_hard_mode):
            self._raise_win()

        self._changed()

    def _raise_win(self) -> None:
        self._win_raised = True
        s = self.state
        stats = s.identity.stats
        stats.highest_cash = max(stats.highest_cash, s.money)
        if s.run_flags.is_purist_run:
            stats.purist_wins += 1
        if s.is_hard_mode:
            stats.hard_mode_wins += 1
        refresh_titles(s.identity, has_cheated=s.run_flags.has_cheated)

        updates = [(LeaderboardCategory.rich, stats.highest_cash)]
        if s.run_flags.is_purist_run:
            updates.append((LeaderboardCategory.purist, stats.purist_wins))
        self._submit_scores(updates)

        logger.info("Run won at streak %s (flips=%s, money=%s)", s.streak, s.total_flips, s.money)
        self._emit(
            "WIN",
            {"money": s.money, "total_flips": s.total_flips, "purist": s.run_flags.is_purist_run},
        )

    # ---- shop ----

    def buy_upgrade(self, upgrade_id: UpgradeId | str) -> bool:
        try:
            uid = UpgradeId(upgrade_id)
        except ValueError as e:
            raise ValueError(f"Unknown upgrade: {upgrade_id}") from e

        if self._reject("buy", uid) is not None:
            return False

        result = apply_purchase(self.state, uid)
        self._emit(
            "UPGRADE_PURCHASED",
            {"upgrade_id": uid.value, "level": result.new_level, "cost": result.cost, "currency": result.currency.value},
        )
        if uid == UpgradeId.PRESTIGE_MOM:
            self._open_interstitial()
        self._changed()
        return True

    def _open_interstitial(self) -> None:
        s = self.state
        s.identity.stats.special_purchases += 1
        refresh_titles(s.identity, has_cheated=s.run_flags.has_cheated)
        self._submit_scores([(LeaderboardCategory.mommy, s.identity.stats.special_purchases)])

        if self._pick_compliment is not None:
            text = self._pick_compliment()
        else:
            text = self._rng.choice(COMPLIMENTS)
        self._interstitial = text
        self._emit("INTERSTITIAL_OPENED", {"text": text})

    def confirm_interstitial(self) -> bool:
        """Acknowledge the forbidden button. This wipes the run."""

        text = self._interstitial
        if text is None:
            return False
        self._interstitial = None
        self.wipe_run(reason="interstitial", compliment=text)
        return True

    # ---- run-level transitions ----

    def ascend(self) -> bool:
        if self._reject("ascend") is not None:
            return False

        result = ascend(self.state)
        self._cancel_flip()
        self.state = result.state
        self._win_raised = False
        refresh_titles(self.state.identity, has_cheated=self.state.run_flags.has_cheated)

        if result.should_submit:
            self._submit_scores([(LeaderboardCategory.prestige, result.new_level)])

        logger.info("Ascended to prestige %s (+%s fragments)", result.new_level, result.fragments_awarded)
        self._emit(
            "ASCENDED",
            {"prestige_level": result.new_level, "fragments_awarded": result.fragments_awarded},
        )
        self._changed()
        return True

    def wipe_run(self, *, reason: str = "reset", compliment: str | None = None) -> None:
        """Full local wipe of the run. Player stats come back from their own store."""

        self._cancel_flip()
        if self._reload_identity is not None:
            identity = self._reload_identity()
        else:
            identity = self.state.identity.model_copy(deep=True)
        self.state = GameState(identity=identity)
        self._win_raised = False
        self._interstitial = None

        payload: dict[str, object] = {"reason": reason}
        if compliment is not None:
            payload["compliment"] = compliment
        self._emit("RUN_WIPED", payload)
        self._changed()

    def _cancel_flip(self) -> None:
        if self._flip_timer is not None:
            self._flip_timer.cancel()
            self._flip_timer = None
        if not self.fsm.ready:
            self.fsm = FlipFSM()

    # ---- preferences / identity ----

    def set_auto_flip(self, enabled: bool) -> None:
        self.state.auto_flip_enabled = enabled
        self._changed()

    def set_auto_buy(self, enabled: bool) -> None:
        self.state.auto_buy_enabled = enabled
        self._changed()

    def set_hard_mode(self, enabled: bool) -> bool:
        if enabled == self.state.is_hard_mode:
            return True
        if self._reject("hard_mode") is not None:
            return False
        self.state.is_hard_mode = enabled
        if not enabled:
            self.state.upgrades[UpgradeId.HARD_MODE_BUFF] = 0
        self._changed()
        return True

    def set_player_name(self, name: str) -> None:
        cleaned = name.strip()
        if not cleaned:
            raise ValueError("Name must not be empty")
        self.state.identity.player_name = cleaned
        self._changed()

    def set_active_title(self, title_id: str | None) -> None:
        set_active_title(self.state.identity, title_id)
        self._changed()

    def restore(self, state: GameState) -> None:
        """Replace the run with an imported save. Player stats and titles never go down."""

        self._cancel_flip()
        state.identity = merge_identity(self.state.identity, state.identity)
        self.state = state
        self._win_raised = state.streak >= economy.win_streak(state.is_hard_mode)
        self._interstitial = None
        self._changed()

    # ---- debug / cheats ----

    def mark_cheated(self) -> None:
        self.state.run_flags.has_cheated = True
        refresh_titles(self.state.identity, has_cheated=True)

    def grant_money(self, amount: int) -> None:
        self.mark_cheated()
        self.state.money += max(0, amount)
        self._changed()

    def grant_fragments(self, amount: int) -> None:
        self.mark_cheated()
        self.state.void_fragments += max(0, amount)
        self._changed()

    # ---- auto-play predicates (checked when timers fire) ----

    def _auto_flip_ready(self) -> bool:
        s = self.state
        return (
            not self._closed
            and s.auto_flip_enabled
            and economy.has_auto_flip(s.upgrades)
            and self.fsm.ready
            and not self._win_raised
            and self._interstitial is None
        )

    def _auto_buy_ready(self) -> bool:
        s = self.state
        return (
            not self._closed
            and s.auto_buy_enabled
            and economy.has_auto_buy(s.upgrades)
            and not self._win_raised
            and self._interstitial is None
        )

    # ---- plumbing ----

    def _submit_scores(self, scores: list[tuple[LeaderboardCategory, int]]) -> None:
        identity = self.state.identity
        if self._score_sink is None or not identity.player_name:
            return
        name = CHEATER_NAME if self.state.run_flags.has_cheated else identity.player_name
        title = display_title(identity)
        now = self._now_ms()
        updates = [
            ScoreUpdate(category=cat, entry=LeaderboardEntry(name=name, score=score, timestamp=now, title=title))
            for cat, score in scores
        ]
        self._score_sink(updates)

    def _emit(self, type: EventType, payload: dict[str, object]) -> None:
        if self._on_event is not None:
            self._on_event(GameEvent.now(type=type, payload=payload))

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)
        if self._closed:
            return
        self.auto_flip.rearm()
        self.auto_buy.rearm()

    # ---- read model ----

    def view(self) -> GameView:
        s = self.state
        shop: list[ShopItemView] = []
        for uid, cfg in UPGRADES.items():
            level = level_of(s.upgrades, uid)
            cost = next_cost(cfg, s.upgrades)
            wallet = s.money if cfg.currency == Currency.money else s.void_fragments
            shop.append(
                ShopItemView(
                    id=uid,
                    name=cfg.name,
                    description=cfg.description,
                    level=level,
                    max_level=effective_max_level(cfg, s.upgrades),
                    next_cost=cost,
                    currency=cfg.currency.value,
                    unlocked=is_unlocked(s, uid),
                    affordable=cost is not None and wallet >= cost,
                    effect=cfg.format_effect(cfg.effect(level)),
                    next_effect=cfg.format_effect(cfg.effect(level + 1)) if cost is not None else None,
                )
            )

        p = self.probability
        next_streak = s.streak + 1
        return GameView(
            state=s,
            probability=p,
            flip_duration_ms=self.flip_duration_ms,
            win_streak=self.win_streak,
            payout_next_heads=economy.payout(next_streak, s.upgrades, s.prestige_level),
            expected_flips_to_win=economy.expected_flips_to_streak(p, self.win_streak),
            is_flipping=self.is_flipping,
            has_won=self._win_raised,
            can_ascend=self._win_raised and self.fsm.ready and self._interstitial is None,
            hard_mode_unlocked=s.prestige_level >= economy.HARD_MODE_PRESTIGE_GATE,
            pending_interstitial=self._interstitial,
            shop=shop,
        )
