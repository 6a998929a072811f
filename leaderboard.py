"""Leaderboard operations: submit a score, cache a base score, record a mint.

Security note: the score and every social-derived column are recomputed here
from provider data on each write. Request bodies carry only the identity
claim (fid + username), which is re-verified against Neynar first. Some
earlier client builds posted a precomputed score/tier; that is deliberately
not accepted.

Concurrency:
- submit_score upserts with INSERT .. ON CONFLICT DO NOTHING RETURNING, so
  only the request that actually created the row sees it as new and emits
  ``joined``. The update branch locks the row (FOR UPDATE on PostgreSQL;
  SQLite serializes writers) to read the previous tier consistently.
- cache_base_score reads ``score`` under the same row lock, but a later
  submit_score does not recompute combined_score, so combined_score can lag
  the Niner Score until the next base-score refresh. Accepted staleness.
- record_mint is a single compare-and-swap UPDATE on nft_minted.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

import activity
import base_chain
import neynar
from errors import AlreadyDone, NinerError, NotFound, NotVerified
from extensions import db
from models_leaderboard import ACTION_NFT_MINTED, ActivityEvent, LeaderboardEntry, WalletLink
from scoring import (
    TIER_DIAMOND,
    combine,
    combined_tier_for_score,
    compute_base_score,
    compute_engagement,
    compute_niner_score,
    tier_for_score,
)
from validation import (
    validate_base_score,
    validate_fid,
    validate_token_id,
    validate_transaction_hash,
    validate_username,
    validate_wallets,
)


logger = logging.getLogger(__name__)

VERIFY_MINT_TX = os.getenv("VERIFY_MINT_TX", "1") == "1"

LEADERBOARD_MAX_LIMIT = 100
EXPLORE_POOL_SIZE = 100
EXPLORE_CATEGORY_SIZE = 6


@dataclass
class SubmitResult:
    entry: LeaderboardEntry
    event: ActivityEvent | None
    created: bool


def _dialect_insert(model):
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect in ("postgresql", "postgres"):
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise RuntimeError(f"Upsert not supported on dialect {dialect!r}")
    return insert(model)


def _verify_identity(provider, fid: int, username: str):
    try:
        profile = provider.fetch_user(fid)
    except NotFound as exc:
        logger.warning("User not found for fid %s", fid)
        raise NotVerified("User not found") from exc

    if profile.fid != fid or profile.username.lower() != username.lower():
        logger.warning("Username mismatch for fid %s: %s vs %s", fid, username, profile.username)
        raise NotVerified("Username does not match FID")
    return profile


# -------------------------------
# submit score
# -------------------------------
def submit_score(fid, username, provider=None) -> SubmitResult:
    fid = validate_fid(fid)
    username = validate_username(username)
    provider = provider or neynar.get_client()

    profile = _verify_identity(provider, fid, username)
    metrics = provider.fetch_social_metrics(profile)

    score = compute_niner_score(metrics)
    tier = tier_for_score(score)
    engagement = compute_engagement(
        metrics.follower_count, metrics.total_casts, metrics.total_likes, metrics.total_recasts
    )
    logger.info("Server-calculated score for fid %s: %s (%s)", fid, score, tier)

    values = {
        "username": profile.username,
        "display_name": profile.display_name,
        "avatar_url": profile.pfp_url,
        "score": score,
        "tier": tier,
        "casts": metrics.total_casts,
        "followers": metrics.follower_count,
        "engagement": engagement,
    }
    now = datetime.utcnow()

    try:
        stmt = (
            _dialect_insert(LeaderboardEntry)
            .values(fid=fid, nft_minted=False, created_at=now, updated_at=now, **values)
            .on_conflict_do_nothing(index_elements=["fid"])
            .returning(LeaderboardEntry.fid)
        )
        was_absent = db.session.execute(stmt).first() is not None

        previous_tier = None
        if not was_absent:
            previous_tier = db.session.execute(
                select(LeaderboardEntry.tier).where(LeaderboardEntry.fid == fid).with_for_update()
            ).scalar_one()
            db.session.execute(
                update(LeaderboardEntry)
                .where(LeaderboardEntry.fid == fid)
                .values(updated_at=now, **values)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Leaderboard upsert failed for fid %s", fid)
        raise NinerError("Failed to save to leaderboard") from exc

    entry = db.session.get(LeaderboardEntry, fid)
    event = activity.emit_for_submission(entry, was_absent, previous_tier)
    return SubmitResult(entry=entry, event=event, created=was_absent)


# -------------------------------
# base score
# -------------------------------
def cache_base_score(fid, base_score, wallet_addresses) -> dict:
    """Store a base score and the combined score derived from the stored Niner Score.

    Requires an existing row; returns {"not_in_leaderboard": True} otherwise
    and writes nothing. Emits no activity event.
    """
    fid = validate_fid(fid)
    base_score = validate_base_score(base_score)
    wallets = validate_wallets(wallet_addresses) if wallet_addresses else []

    try:
        entry = db.session.execute(
            select(LeaderboardEntry)
            .where(LeaderboardEntry.fid == fid)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if entry is None:
            db.session.rollback()
            logger.info("fid %s not in leaderboard yet, skipping base score cache", fid)
            return {"not_in_leaderboard": True}

        farcaster_score = entry.score or 0
        combined_score = combine(farcaster_score, base_score)

        entry.base_score = base_score
        entry.combined_score = combined_score
        entry.wallet_addresses = wallets
        entry.updated_at = datetime.utcnow()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Caching base score failed for fid %s", fid)
        raise NinerError("Failed to cache score") from exc

    logger.info("fid %s: farcaster %s, base %s, combined %s", fid, farcaster_score, base_score, combined_score)
    return {
        "farcaster_score": farcaster_score,
        "base_score": base_score,
        "combined_score": combined_score,
        "combined_tier": combined_tier_for_score(combined_score),
    }


def linked_wallets(fid: int) -> list[str]:
    rows = WalletLink.query.filter_by(fid=fid).order_by(WalletLink.verified_at.asc()).all()
    return [r.wallet for r in rows]


def authorized_wallets(fid: int, provider) -> set[str]:
    """Wallets a fid may score: Farcaster-verified addresses plus signature-linked ones."""
    try:
        profile = provider.fetch_user(fid)
    except NotFound as exc:
        raise NotVerified("User not found") from exc
    return set(profile.verified_addresses) | set(linked_wallets(fid))


def refresh_base_score(fid, wallet_addresses, provider=None, chain=None) -> dict:
    """Compute the base score server-side for owned wallets and cache it."""
    fid = validate_fid(fid)
    wallets = validate_wallets(wallet_addresses)

    if db.session.get(LeaderboardEntry, fid) is None:
        return {"not_in_leaderboard": True}

    provider = provider or neynar.get_client()
    chain = chain or base_chain

    unauthorized = sorted(set(wallets) - authorized_wallets(fid, provider))
    if unauthorized:
        raise NotVerified("Wallet is not verified for this FID", wallets=unauthorized)

    chain_activity = chain.fetch_chain_activity(wallets)
    base_score = compute_base_score(chain_activity)
    result = cache_base_score(fid, base_score, wallets)
    return {
        **result,
        "activity": chain_activity.to_dict(),
        "primary_wallet": wallets[0],
    }


# -------------------------------
# NFT mint
# -------------------------------
def record_mint(fid, transaction_hash, token_id) -> LeaderboardEntry:
    fid = validate_fid(fid)
    transaction_hash = validate_transaction_hash(transaction_hash)
    token_id = validate_token_id(token_id)

    existing = db.session.get(LeaderboardEntry, fid)
    if existing is None:
        raise NotFound("User not found in leaderboard. Save your score first.")
    if existing.nft_minted:
        raise AlreadyDone("NFT already minted for this user")

    if VERIFY_MINT_TX:
        base_chain.verify_mint_transaction(transaction_hash)

    try:
        # Only the NFT columns; score/tier/metrics are never touched here.
        result = db.session.execute(
            update(LeaderboardEntry)
            .where(LeaderboardEntry.fid == fid, LeaderboardEntry.nft_minted.is_(False))
            .values(nft_minted=True, nft_token_id=token_id, nft_transaction_hash=transaction_hash)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.session.rollback()
            raise AlreadyDone("NFT already minted for this user")
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Updating NFT status failed for fid %s", fid)
        raise NinerError("Failed to update NFT status") from exc

    entry = db.session.get(LeaderboardEntry, fid)
    logger.info("NFT status updated for fid %s (token %s)", fid, token_id)
    activity.record_activity(
        entry.fid,
        entry.username,
        entry.avatar_url,
        ACTION_NFT_MINTED,
        {"score": entry.score, "tier": entry.tier, "token_id": token_id},
    )
    return entry


# -------------------------------
# read model
# -------------------------------
def get_entry(fid) -> LeaderboardEntry:
    fid = validate_fid(fid)
    entry = db.session.get(LeaderboardEntry, fid)
    if entry is None:
        raise NotFound("User not found in leaderboard")
    return entry


def get_entry_by_username(username) -> LeaderboardEntry:
    username = validate_username(username)
    entry = LeaderboardEntry.query.filter(
        func.lower(LeaderboardEntry.username) == username.lower()
    ).first()
    if entry is None:
        raise NotFound("User not found in leaderboard")
    return entry


def _ranked_query():
    return LeaderboardEntry.query.order_by(
        LeaderboardEntry.score.desc(),
        LeaderboardEntry.created_at.asc(),
        LeaderboardEntry.fid.asc(),
    )


def top_entries(limit: int = LEADERBOARD_MAX_LIMIT, offset: int = 0) -> list[LeaderboardEntry]:
    limit = max(1, min(int(limit), LEADERBOARD_MAX_LIMIT))
    offset = max(0, int(offset))
    return _ranked_query().offset(offset).limit(limit).all()


def rank_of(entry: LeaderboardEntry) -> int:
    """1-based position by score; ties share the better rank."""
    higher = LeaderboardEntry.query.filter(LeaderboardEntry.score > entry.score).count()
    return higher + 1


def ranked_entries(limit: int = LEADERBOARD_MAX_LIMIT, offset: int = 0) -> list[tuple[LeaderboardEntry, int]]:
    """A page of top_entries paired with the same tie-sharing rank rank_of gives."""
    offset = max(0, int(offset))
    entries = top_entries(limit, offset)
    ranked = []
    for i, entry in enumerate(entries):
        if i == 0:
            rank = rank_of(entry)
        elif entry.score == entries[i - 1].score:
            rank = ranked[-1][1]
        else:
            # Rows are score-descending, so every earlier row scores higher.
            rank = offset + i + 1
        ranked.append((entry, rank))
    return ranked


def explore_categories() -> list[dict]:
    users = top_entries(EXPLORE_POOL_SIZE)
    n = EXPLORE_CATEGORY_SIZE

    categories = [
        ("top_performers", "Top Performers", users[:n]),
        (
            "rising_stars",
            "Rising Stars",
            sorted(
                (u for u in users if 200 <= u.score < 500),
                key=lambda u: u.engagement or 0,
                reverse=True,
            )[:n],
        ),
        ("diamond_elite", "Diamond Elite", [u for u in users if u.tier == TIER_DIAMOND][:n]),
        ("content_creators", "Content Creators", sorted(users, key=lambda u: u.casts or 0, reverse=True)[:n]),
        ("community_leaders", "Community Leaders", sorted(users, key=lambda u: u.followers or 0, reverse=True)[:n]),
        (
            "base_builders",
            "Base Builders",
            sorted(
                (u for u in users if u.base_score),
                key=lambda u: u.base_score,
                reverse=True,
            )[:n],
        ),
    ]
    return [
        {"key": key, "title": title, "users": [u.to_dict() for u in members]}
        for key, title, members in categories
        if members
    ]


def tier_distribution() -> dict:
    rows = (
        db.session.query(LeaderboardEntry.tier, func.count(LeaderboardEntry.fid))
        .group_by(LeaderboardEntry.tier)
        .all()
    )
    total = LeaderboardEntry.query.count()
    avg_score = db.session.query(func.avg(LeaderboardEntry.score)).scalar()
    minted = LeaderboardEntry.query.filter(LeaderboardEntry.nft_minted.is_(True)).count()
    with_base = LeaderboardEntry.query.filter(LeaderboardEntry.base_score.isnot(None)).count()
    return {
        "total_users": total,
        "tiers": {tier: int(count) for tier, count in rows},
        "average_score": round(float(avg_score), 1) if avg_score is not None else 0.0,
        "nfts_minted": minted,
        "with_base_score": with_base,
    }
