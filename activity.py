from __future__ import annotations

import json
import logging
from datetime import datetime

from extensions import db
from models_leaderboard import (
    ACTION_JOINED,
    ACTION_SCORE_UPDATED,
    ACTION_TIER_ACHIEVED,
    ActivityEvent,
)


logger = logging.getLogger(__name__)

FEED_MAX_LIMIT = 100


def classify_submission(was_absent: bool, previous_tier: str | None, new_tier: str) -> tuple[str, dict]:
    """Pick the single activity event a leaderboard upsert produces.

    Returns (action_type, extra action_data).
    """
    if was_absent:
        return ACTION_JOINED, {}
    if previous_tier is not None and previous_tier != new_tier:
        return ACTION_TIER_ACHIEVED, {"previous_tier": previous_tier}
    return ACTION_SCORE_UPDATED, {}


def record_activity(
    fid: int | None,
    username: str,
    avatar_url: str | None,
    action_type: str,
    action_data: dict | None = None,
) -> ActivityEvent | None:
    """Append an activity event and commit it on its own.

    Best-effort: called after the leaderboard write has committed, so a
    failure here is logged and returns None without touching that write.
    """
    try:
        event = ActivityEvent(
            fid=fid,
            username=(username or "")[:64],
            avatar_url=avatar_url,
            action_type=action_type,
            action_data_json=json.dumps(action_data or {}, separators=(",", ":")),
            created_at=datetime.utcnow(),
        )
        db.session.add(event)
        db.session.commit()
        return event
    except Exception:
        logger.exception("Failed to record %s activity for fid %s", action_type, fid)
        db.session.rollback()
        return None


def emit_for_submission(entry, was_absent: bool, previous_tier: str | None) -> ActivityEvent | None:
    action_type, extra = classify_submission(was_absent, previous_tier, entry.tier)
    action_data = {"score": entry.score, "tier": entry.tier, **extra}
    return record_activity(entry.fid, entry.username, entry.avatar_url, action_type, action_data)


def recent_activity(limit: int = 20) -> list[ActivityEvent]:
    limit = max(1, min(int(limit or 20), FEED_MAX_LIMIT))
    return (
        ActivityEvent.query.order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
        .limit(limit)
        .all()
    )
