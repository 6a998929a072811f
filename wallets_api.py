"""Wallet linking and Base chain scoring.

Routes:
- POST /api/wallet/nonce     {fid, wallet}
- POST /api/wallet/verify    {fid, wallet, signature}
- GET  /api/wallet/links/<fid>
- POST /api/base-activity    {wallet_addresses}          (read-only preview)
- POST /api/base-score       {fid, wallet_addresses}     (scores + caches)

The base score is always computed here from chain data; the client never
sends one.
"""

from flask import Blueprint, current_app, jsonify, request

import base_chain
import leaderboard
import wallet_links
from errors import MalformedRequest
from extensions import limiter
from scoring import base_score_breakdown, compute_base_score
from validation import validate_fid, validate_wallets


wallets_api = Blueprint("wallets_api", __name__)


def _challenge_store():
    return current_app.extensions["challenge_store"]


@wallets_api.post("/api/wallet/nonce")
@limiter.limit("10 per minute")
def wallet_nonce():
    data = request.get_json(silent=True) or {}
    challenge = wallet_links.issue_challenge(_challenge_store(), data.get("fid"), data.get("wallet"))
    return jsonify({"success": True, **challenge})


@wallets_api.post("/api/wallet/verify")
@limiter.limit("10 per minute")
def wallet_verify():
    data = request.get_json(silent=True) or {}
    link = wallet_links.verify_challenge(
        _challenge_store(), data.get("fid"), data.get("wallet"), data.get("signature")
    )
    return jsonify(
        {
            "success": True,
            "link": link.to_dict(),
            "wallets": leaderboard.linked_wallets(link.fid),
        }
    )


@wallets_api.get("/api/wallet/links/<int:fid>")
def wallet_links_for_fid(fid):
    fid = validate_fid(fid)
    return jsonify({"success": True, "fid": fid, "wallets": leaderboard.linked_wallets(fid)})


@wallets_api.post("/api/base-activity")
@limiter.limit("30 per minute")
def base_activity():
    data = request.get_json(silent=True) or {}
    wallets = validate_wallets(data.get("wallet_addresses"))
    chain_activity = base_chain.fetch_chain_activity(wallets)
    return jsonify(
        {
            "success": True,
            "activity": chain_activity.to_dict(),
            "base_score": compute_base_score(chain_activity),
            "breakdown": base_score_breakdown(chain_activity),
            "primary_wallet": wallets[0],
        }
    )


@wallets_api.post("/api/base-score")
@limiter.limit("10 per minute")
def base_score():
    data = request.get_json(silent=True) or {}
    if not data.get("fid"):
        raise MalformedRequest("Missing required fields: fid, wallet_addresses")

    result = leaderboard.refresh_base_score(data.get("fid"), data.get("wallet_addresses"))
    if result.get("not_in_leaderboard"):
        return jsonify({"success": False, "message": "User not in leaderboard yet", "not_in_leaderboard": True})
    return jsonify({"success": True, **result})
