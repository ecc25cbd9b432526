"""
Hero-boosted gardening quest APR.

A gardening hero earns extra emissions on top of the pool's base emission
APR. The per-quest boost scales with the hero's INT + WIS + level and its
gardening skill. Heroes with the Rapid Renewal passive recharge stamina
faster and therefore quest more often:

    base stamina recharge: 1200 s
    level discount:        2 s/level (5 s/level with Rapid Renewal)

    level 100: 1000 s vs 700 s per stamina -> 1.4286x quests per year

The reported range spans a worst hero (fresh level 1, no gardening gene) to
a maxed gardener with Rapid Renewal.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

# Boost per (INT + WIS + level) point per gardening skill point
BOOST_MULTIPLIER = Decimal('0.00012')

BASE_STAMINA_RECHARGE = 1200  # seconds
DISCOUNT_PER_LEVEL = 2
DISCOUNT_PER_LEVEL_RAPID_RENEWAL = 5


@dataclass(frozen=True)
class HeroAttributes:
    level: int
    intelligence: int
    wisdom: int
    gardening_skill: int
    rapid_renewal: bool = False


WORST_HERO = HeroAttributes(level=1, intelligence=5, wisdom=5, gardening_skill=0)
BEST_HERO = HeroAttributes(level=100, intelligence=80, wisdom=80, gardening_skill=10, rapid_renewal=True)


@dataclass
class QuestBoost:
    worst_boost_pct: Decimal
    best_boost_pct: Decimal
    rapid_renewal_multiplier: Decimal
    worst_quest_apr: Optional[Decimal] = None
    best_quest_apr: Optional[Decimal] = None

    @property
    def apr_range(self) -> Optional[Tuple[Decimal, Decimal]]:
        if self.worst_quest_apr is None or self.best_quest_apr is None:
            return None
        return self.worst_quest_apr, self.best_quest_apr


def per_quest_boost(hero: HeroAttributes) -> Decimal:
    """Fractional boost of a single quest (0.312 = +31.2%)"""
    return (hero.intelligence + hero.wisdom + hero.level) * hero.gardening_skill * BOOST_MULTIPLIER


def rapid_renewal_multiplier(level: int) -> Decimal:
    """Quest frequency with Rapid Renewal relative to without, at a given level"""
    without_rr = BASE_STAMINA_RECHARGE - level * DISCOUNT_PER_LEVEL
    with_rr = BASE_STAMINA_RECHARGE - level * DISCOUNT_PER_LEVEL_RAPID_RENEWAL
    return Decimal(without_rr) / Decimal(with_rr)


def total_boost(hero: HeroAttributes) -> Decimal:
    """Per-quest boost compounded with the Rapid Renewal frequency gain"""
    boost = per_quest_boost(hero)
    if not hero.rapid_renewal:
        return boost
    return (1 + boost) * rapid_renewal_multiplier(hero.level) - 1


def calculate_quest_boost(
    emission_apr_pct: Optional[Decimal],
    worst_hero: HeroAttributes = WORST_HERO,
    best_hero: HeroAttributes = BEST_HERO
) -> QuestBoost:
    """
    Additional quest APR range on top of the base emission APR.

    Args:
        emission_apr_pct: Pool emission APR in percent, None if unavailable

    Returns:
        QuestBoost; the quest APRs are None when the emission APR is
    """
    worst = total_boost(worst_hero)
    best = total_boost(best_hero)
    boost = QuestBoost(
        worst_boost_pct=worst * 100,
        best_boost_pct=best * 100,
        rapid_renewal_multiplier=rapid_renewal_multiplier(best_hero.level),
    )
    if emission_apr_pct is not None:
        boost.worst_quest_apr = emission_apr_pct * worst
        boost.best_quest_apr = emission_apr_pct * best
    return boost
