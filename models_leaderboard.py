"""Leaderboard, activity feed and wallet-link models.

- leaderboard.fid is the identity key (Farcaster ID); one row per fid.
- Social-derived columns (score, tier, casts, followers, engagement) are only
  written by the scoring path in leaderboard.py, never from request bodies.
- activities is append-only.
"""

import json
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from extensions import db
from scoring import combined_tier_for_score


ACTION_JOINED = "joined"
ACTION_SCORE_UPDATED = "score_updated"
ACTION_TIER_ACHIEVED = "tier_achieved"
ACTION_NFT_MINTED = "nft_minted"

ACTION_TYPES = (ACTION_JOINED, ACTION_SCORE_UPDATED, ACTION_TIER_ACHIEVED, ACTION_NFT_MINTED)


def _load_json(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


class LeaderboardEntry(db.Model):
    __tablename__ = "leaderboard"

    fid = Column(BigInteger, primary_key=True, autoincrement=False)
    username = Column(String(64), nullable=False, index=True)
    display_name = Column(String(128), nullable=True)
    avatar_url = Column(Text, nullable=True)

    score = Column(Integer, nullable=False, default=0)
    tier = Column(String(16), nullable=False, default="bronze")
    casts = Column(Integer, nullable=False, default=0)
    followers = Column(Integer, nullable=False, default=0)
    engagement = Column(Float, nullable=False, default=0.0)

    # NULL until a wallet has been scored.
    base_score = Column(Integer, nullable=True)
    combined_score = Column(Integer, nullable=True)
    wallet_addresses_json = Column(Text, nullable=True)

    nft_minted = Column(Boolean, nullable=False, default=False)
    nft_token_id = Column(String(64), nullable=True)
    nft_transaction_hash = Column(String(66), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_leaderboard_score", "score"),
        Index("idx_leaderboard_base_score", "base_score"),
    )

    @property
    def wallet_addresses(self) -> list[str]:
        return _load_json(self.wallet_addresses_json, [])

    @wallet_addresses.setter
    def wallet_addresses(self, addresses) -> None:
        self.wallet_addresses_json = json.dumps(list(addresses or []))

    @property
    def combined_tier(self) -> str | None:
        if self.combined_score is None:
            return None
        return combined_tier_for_score(self.combined_score)

    def to_dict(self):
        return {
            "fid": self.fid,
            "username": self.username,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "score": self.score,
            "tier": self.tier,
            "casts": self.casts,
            "followers": self.followers,
            "engagement": self.engagement,
            "base_score": self.base_score,
            "combined_score": self.combined_score,
            "combined_tier": self.combined_tier,
            "wallet_addresses": self.wallet_addresses,
            "nft_minted": bool(self.nft_minted),
            "nft_token_id": self.nft_token_id,
            "nft_transaction_hash": self.nft_transaction_hash,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ActivityEvent(db.Model):
    """Append-only stream behind the live activity feed."""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True)
    fid = Column(BigInteger, nullable=True, index=True)
    username = Column(String(64), nullable=False)
    avatar_url = Column(Text, nullable=True)
    action_type = Column(String(32), nullable=False)
    action_data_json = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_activities_created", "created_at"),
        Index("idx_activities_fid_created", "fid", "created_at"),
    )

    @property
    def action_data(self) -> dict:
        return _load_json(self.action_data_json, {})

    def to_dict(self):
        return {
            "id": self.id,
            "fid": self.fid,
            "username": self.username,
            "avatar_url": self.avatar_url,
            "action_type": self.action_type,
            "action_data": self.action_data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class WalletLink(db.Model):
    """A wallet proven (by signed message) to belong to a fid."""

    __tablename__ = "wallet_links"

    id = Column(Integer, primary_key=True)
    fid = Column(BigInteger, nullable=False, index=True)
    wallet = Column(String(42), nullable=False)
    verified_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("fid", "wallet", name="uq_wallet_links_fid_wallet"),
    )

    def to_dict(self):
        return {
            "fid": self.fid,
            "wallet": self.wallet,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
        }
