"""Leaderboard APIs.

Routes:
- POST /api/leaderboard/submit   {fid, username}
- POST /api/leaderboard/mint     {fid, transaction_hash, token_id}
- GET  /api/leaderboard?limit=&offset=&fid=
- GET  /api/leaderboard/<fid>
- GET  /api/profile/<username>
- GET  /api/explore
- GET  /api/stats
- GET  /api/activity?limit=

Failures are raised as errors.NinerError subclasses and rendered by the
handler registered in app.py.
"""

from datetime import datetime

from flask import Blueprint, jsonify, request

import activity
import leaderboard
from errors import MalformedRequest, NotFound
from extensions import limiter


leaderboard_api = Blueprint("leaderboard_api", __name__)


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise MalformedRequest(f"Invalid {name}")


@leaderboard_api.post("/api/leaderboard/submit")
@limiter.limit("20 per minute")
def submit_score():
    data = request.get_json(silent=True) or {}
    fid = data.get("fid")
    username = data.get("username")
    if not fid or not username:
        raise MalformedRequest("Missing required fields: fid, username")

    result = leaderboard.submit_score(fid, username)
    return jsonify(
        {
            "success": True,
            "data": result.entry.to_dict(),
            "created": result.created,
            "activity": result.event.to_dict() if result.event else None,
        }
    )


@leaderboard_api.post("/api/leaderboard/mint")
@limiter.limit("10 per minute")
def record_mint():
    data = request.get_json(silent=True) or {}
    fid = data.get("fid")
    tx_hash = data.get("transaction_hash")
    token_id = data.get("token_id")
    if not fid or not tx_hash or not token_id:
        raise MalformedRequest("Missing required fields: fid, transaction_hash, token_id")

    entry = leaderboard.record_mint(fid, tx_hash, token_id)
    return jsonify({"success": True, "data": entry.to_dict()})


@leaderboard_api.get("/api/leaderboard")
def get_leaderboard():
    limit = _int_arg("limit", leaderboard.LEADERBOARD_MAX_LIMIT)
    offset = _int_arg("offset", 0)
    ranked = [
        {**entry.to_dict(), "rank": rank}
        for entry, rank in leaderboard.ranked_entries(limit, offset)
    ]

    current_user = None
    current_fid = _int_arg("fid", 0)
    if current_fid:
        try:
            entry = leaderboard.get_entry(current_fid)
        except NotFound:
            # Viewer has not submitted a score yet.
            entry = None
        if entry is not None:
            current_user = {**entry.to_dict(), "rank": leaderboard.rank_of(entry)}

    return jsonify(
        {
            "success": True,
            "data": {
                "entries": ranked,
                "current_user": current_user,
                "last_updated": datetime.utcnow().isoformat(),
            },
        }
    )


@leaderboard_api.get("/api/leaderboard/<int:fid>")
def get_entry(fid):
    entry = leaderboard.get_entry(fid)
    return jsonify({"success": True, "data": {**entry.to_dict(), "rank": leaderboard.rank_of(entry)}})


@leaderboard_api.get("/api/profile/<username>")
def get_profile(username):
    entry = leaderboard.get_entry_by_username(username)
    return jsonify({"success": True, "data": {**entry.to_dict(), "rank": leaderboard.rank_of(entry)}})


@leaderboard_api.get("/api/explore")
def explore():
    return jsonify({"success": True, "categories": leaderboard.explore_categories()})


@leaderboard_api.get("/api/stats")
def stats():
    return jsonify({"success": True, "data": leaderboard.tier_distribution()})


@leaderboard_api.get("/api/activity")
def get_activity():
    limit = _int_arg("limit", 20)
    events = activity.recent_activity(limit)
    return jsonify({"success": True, "items": [e.to_dict() for e in events]})
