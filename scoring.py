"""Niner Score, Base Score, tiers and the combined score.

This module is the single source of truth for every scoring formula. The UI
breakdown is produced by ``niner_score_breakdown`` so it can never drift from
the score the server stores.

All functions here are pure: no I/O, no shared state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field


NINER_SCORE_MAX = 999
BASE_SCORE_MAX = 1000

TIER_BRONZE = "bronze"
TIER_SILVER = "silver"
TIER_GOLD = "gold"
TIER_DIAMOND = "diamond"
TIER_DIAMOND_PRO = "diamond-pro"

# (tier, inclusive lower bound), ascending.
TIERS: list[tuple[str, int]] = [
    (TIER_BRONZE, 0),
    (TIER_SILVER, 251),
    (TIER_GOLD, 501),
    (TIER_DIAMOND, 801),
]

COMBINED_TIERS: list[tuple[str, int]] = TIERS + [(TIER_DIAMOND_PRO, 900)]

NINER_WEIGHT = 0.7
BASE_WEIGHT = 0.3


def _non_negative_int(value) -> int:
    try:
        number = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(number, 0)


def _non_negative_float(value) -> float:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return max(number, 0.0)


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; scores round .5 up.
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class SocialMetrics:
    follower_count: int = 0
    following_count: int = 0
    total_casts: int = 0
    total_replies: int = 0
    total_recasts: int = 0
    total_likes: int = 0
    power_badge: bool = False

    @classmethod
    def from_counts(cls, **counts) -> "SocialMetrics":
        """Build metrics from loosely-typed provider data; bad or negative values become 0."""
        return cls(
            follower_count=_non_negative_int(counts.get("follower_count")),
            following_count=_non_negative_int(counts.get("following_count")),
            total_casts=_non_negative_int(counts.get("total_casts")),
            total_replies=_non_negative_int(counts.get("total_replies")),
            total_recasts=_non_negative_int(counts.get("total_recasts")),
            total_likes=_non_negative_int(counts.get("total_likes")),
            power_badge=bool(counts.get("power_badge")),
        )

    def to_dict(self) -> dict:
        return {
            "follower_count": self.follower_count,
            "following_count": self.following_count,
            "total_casts": self.total_casts,
            "total_replies": self.total_replies,
            "total_recasts": self.total_recasts,
            "total_likes": self.total_likes,
            "power_badge": self.power_badge,
        }


@dataclass(frozen=True)
class ChainTransaction:
    hash: str
    from_address: str
    to_address: str
    value: str
    timestamp: int
    type: str  # send / receive / contract

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "timestamp": self.timestamp,
            "type": self.type,
        }


@dataclass(frozen=True)
class ChainActivity:
    balance_wei: int = 0
    balance_eth: float = 0.0
    transaction_count: int = 0
    nft_count: int = 0
    contract_interactions: int = 0
    # Display only, never scored.
    recent_transactions: list[ChainTransaction] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "balance": str(self.balance_wei),
            "balance_eth": self.balance_eth,
            "transaction_count": self.transaction_count,
            "nft_count": self.nft_count,
            "contract_interactions": self.contract_interactions,
            "recent_transactions": [tx.to_dict() for tx in self.recent_transactions],
        }


def niner_score_breakdown(metrics: SocialMetrics) -> dict[str, float]:
    """Per-contribution points, each already capped."""
    ratio_bonus = 0.0
    if metrics.following_count > 0:
        ratio = metrics.follower_count / metrics.following_count
        ratio_bonus = min(ratio * 10, 50)

    return {
        "followers": min(metrics.follower_count * 0.5, 250),
        "follow_ratio": ratio_bonus,
        "casts": min(metrics.total_casts * 1.5, 150),
        "replies": min(metrics.total_replies * 2, 100),
        "recasts": min(metrics.total_recasts * 3, 200),
        "likes": min(metrics.total_likes * 0.5, 150),
        "power_badge": 100 if metrics.power_badge else 0,
    }


def compute_niner_score(metrics: SocialMetrics) -> int:
    # Caps sum to 900 + 100 badge = 1000; the 999 ceiling keeps the score three digits.
    total = sum(niner_score_breakdown(metrics).values())
    return max(0, min(round_half_up(total), NINER_SCORE_MAX))


def base_score_breakdown(activity: ChainActivity) -> dict[str, int]:
    balance_eth = _non_negative_float(activity.balance_eth)
    return {
        "balance": min(300, int(math.floor(balance_eth * 300))),
        "transactions": min(300, int(math.floor(activity.transaction_count * 3))),
        "nfts": min(200, activity.nft_count * 20),
        "contract_interactions": min(200, activity.contract_interactions * 10),
    }


def compute_base_score(activity: ChainActivity) -> int:
    # Ceiling is 1000 here, not 999.
    total = sum(base_score_breakdown(activity).values())
    return max(0, min(total, BASE_SCORE_MAX))


def _tier_from(ladder: list[tuple[str, int]], score: int) -> str:
    tier = ladder[0][0]
    for name, threshold in ladder:
        if score >= threshold:
            tier = name
    return tier


def tier_for_score(score: int) -> str:
    return _tier_from(TIERS, score)


def combined_tier_for_score(combined_score: int) -> str:
    return _tier_from(COMBINED_TIERS, combined_score)


def combine(niner_score: int, base_score: int) -> int:
    """Blend the two scores 70/30.

    With niner <= 999 and base <= 1000 the result is at most
    round(999.3) = 999, so no extra clip is applied.
    """
    return round_half_up(niner_score * NINER_WEIGHT + base_score * BASE_WEIGHT)


def compute_engagement(follower_count: int, casts: int, likes: int, recasts: int) -> float:
    """Average reactions received per cast, one decimal."""
    if follower_count <= 0:
        return 0.0
    per_cast = (likes + recasts) / max(casts, 1)
    return round_half_up(per_cast * 10) / 10
