"""Read-only Farcaster lookups used by the connect flow (nothing is written here)."""

from flask import Blueprint, jsonify, request

import neynar
from extensions import limiter
from scoring import compute_engagement, compute_niner_score, niner_score_breakdown, tier_for_score
from validation import validate_fid, validate_username


farcaster_api = Blueprint("farcaster_api", __name__)


@farcaster_api.get("/api/farcaster/user")
@limiter.limit("30 per minute")
def lookup_user():
    username = validate_username(request.args.get("username"))
    profile = neynar.get_client().lookup_by_username(username)
    return jsonify({"success": True, "user": profile.to_dict()})


@farcaster_api.get("/api/farcaster/stats/<int:fid>")
@limiter.limit("30 per minute")
def user_stats(fid):
    fid = validate_fid(fid)
    client = neynar.get_client()
    profile = client.fetch_user(fid)
    metrics = client.fetch_social_metrics(profile)
    score = compute_niner_score(metrics)
    return jsonify(
        {
            "success": True,
            "user": profile.to_dict(),
            "activity": metrics.to_dict(),
            "niner_score": score,
            "tier": tier_for_score(score),
            "breakdown": niner_score_breakdown(metrics),
            "engagement": compute_engagement(
                metrics.follower_count, metrics.total_casts, metrics.total_likes, metrics.total_recasts
            ),
        }
    )
