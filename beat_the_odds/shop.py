from __future__ import annotations

from dataclasses import dataclass

from beat_the_odds.api.models import GameState
from beat_the_odds.catalog import AUTO_BUY_PRIORITY, Currency, UpgradeId, get_upgrade, next_cost


@dataclass(frozen=True, slots=True)
class PurchaseResult:
    upgrade_id: UpgradeId
    cost: int
    currency: Currency
    new_level: int
    # Money credited immediately (Karma pays out its starting-capital difference).
    bonus_money: int = 0


def apply_purchase(state: GameState, upgrade_id: UpgradeId) -> PurchaseResult:
    """Charge for and apply one level of an upgrade.

    Callers run the "buy" guard pipeline first; this only does the bookkeeping.
    """

    cfg = get_upgrade(upgrade_id)
    cost = next_cost(cfg, state.upgrades)
    if cost is None:
        raise ValueError(f"{upgrade_id} is at max level")

    if cfg.currency == Currency.fragments:
        state.void_fragments -= cost
    else:
        state.money -= cost

    level = state.upgrades.get(upgrade_id, 0)
    state.upgrades[upgrade_id] = level + 1

    bonus = 0
    if upgrade_id == UpgradeId.PRESTIGE_KARMA:
        bonus = int(cfg.effect(level + 1) - cfg.effect(level))
        state.money += bonus

    return PurchaseResult(
        upgrade_id=upgrade_id,
        cost=cost,
        currency=cfg.currency,
        new_level=level + 1,
        bonus_money=bonus,
    )


def auto_buy_candidates() -> tuple[UpgradeId, ...]:
    """Priority order for the auto-buyer; ordinary-currency, non-prestige items only."""

    return tuple(
        uid
        for uid in AUTO_BUY_PRIORITY
        if get_upgrade(uid).currency == Currency.money and not get_upgrade(uid).prestige
    )
