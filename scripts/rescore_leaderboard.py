#!/usr/bin/env python3
"""Recompute every leaderboard row from fresh Farcaster data.

Intended to be run from a scheduler (e.g., Render Cron) once a day. Each row
goes through the same verified submit path as the API, so usernames that no
longer match their fid are skipped rather than rewritten.
"""

import logging

from app import app
from errors import DataUnavailable, NinerError, NotVerified
from leaderboard import submit_score
from models_leaderboard import LeaderboardEntry

logger = logging.getLogger("rescore_leaderboard")


def main():
    refreshed = skipped = failed = tier_changes = 0

    with app.app_context():
        rows = [(e.fid, e.username) for e in LeaderboardEntry.query.order_by(LeaderboardEntry.fid.asc()).all()]
        for fid, username in rows:
            try:
                result = submit_score(fid, username)
                refreshed += 1
                if result.event is not None and result.event.action_type == "tier_achieved":
                    tier_changes += 1
            except (NotVerified, DataUnavailable) as exc:
                logger.warning("Skipping fid %s: %s", fid, exc.message)
                skipped += 1
            except NinerError:
                logger.exception("Rescore failed for fid %s", fid)
                failed += 1

    print({
        "ok": failed == 0,
        "refreshed": refreshed,
        "skipped": skipped,
        "failed": failed,
        "tier_changes": tier_changes,
        "total": len(rows),
    })


if __name__ == "__main__":
    main()
