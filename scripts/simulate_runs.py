"""Play many headless runs to check the economy's pacing.

Each run starts with the auto-flipper and the auto-buyer owned and plays itself
on a virtual clock until the winning streak is reached or the time limit runs out.
Results are summarized with pandas.

Usage:
    uv run python scripts/simulate_runs.py --runs 200 --prestige 0
    uv run python scripts/simulate_runs.py --runs 50 --hard-mode --prestige 5 --csv out.csv

This script is deterministic for a given --seed.
"""

from __future__ import annotations

import argparse
import random
from dataclasses import asdict, dataclass
from pathlib import Path

import pandas as pd

from beat_the_odds.api.models import GameState
from beat_the_odds.catalog import UpgradeId, default_levels
from beat_the_odds.engine import GameEngine
from beat_the_odds.scheduler import VirtualScheduler


STEP_MS = 1_000


@dataclass(frozen=True)
class RunResult:
    seed: int
    won: bool
    minutes: float
    flips: int
    money: int
    max_streak: int
    chance_level: int
    value_level: int


def _starting_state(*, prestige: int, hard_mode: bool) -> GameState:
    upgrades = default_levels()
    upgrades[UpgradeId.PRESTIGE_AUTO] = 1
    upgrades[UpgradeId.PRESTIGE_AUTO_BUY] = 1
    return GameState(upgrades=upgrades, prestige_level=prestige, is_hard_mode=hard_mode)


def simulate_run(*, seed: int, prestige: int, hard_mode: bool, limit_minutes: float) -> RunResult:
    scheduler = VirtualScheduler()
    engine = GameEngine(
        state=_starting_state(prestige=prestige, hard_mode=hard_mode),
        scheduler=scheduler,
        rng=random.Random(seed),
        now_ms=lambda: scheduler.now_ms,
    )
    engine.start()

    limit_ms = int(limit_minutes * 60_000)
    while not engine.has_won and scheduler.now_ms < limit_ms:
        scheduler.advance(STEP_MS)
    engine.close()

    s = engine.state
    return RunResult(
        seed=seed,
        won=engine.has_won,
        minutes=scheduler.now_ms / 60_000,
        flips=s.total_flips,
        money=s.money,
        max_streak=s.max_streak,
        chance_level=s.upgrades[UpgradeId.CHANCE],
        value_level=s.upgrades[UpgradeId.VALUE],
    )


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--runs", type=int, default=100)
    parser.add_argument("--seed", type=int, default=1)
    parser.add_argument("--prestige", type=int, default=0)
    parser.add_argument("--hard-mode", action="store_true")
    parser.add_argument("--limit-minutes", type=float, default=240.0)
    parser.add_argument("--csv", type=Path, default=None, help="Also write the per-run rows here.")
    args = parser.parse_args()

    seeds = random.Random(args.seed).sample(range(1, 2**31 - 1), args.runs)
    rows = [
        asdict(
            simulate_run(
                seed=seed,
                prestige=args.prestige,
                hard_mode=args.hard_mode,
                limit_minutes=args.limit_minutes,
            )
        )
        for seed in seeds
    ]

    df = pd.DataFrame(rows)
    print(f"win rate within {args.limit_minutes:g} min: {df['won'].mean():.1%}")
    print(df.loc[df["won"], ["minutes", "flips", "money", "chance_level", "value_level"]].describe())

    if args.csv is not None:
        df.to_csv(args.csv, index=False)


if __name__ == "__main__":
    main()
