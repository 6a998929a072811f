"""Farcaster social data via the Neynar v2 API.

The scoring core treats this as a black-box provider: ``NeynarClient``
exposes ``fetch_user``, ``lookup_by_username`` and ``fetch_social_metrics``,
and any object with the same methods can stand in for it (tests do).

Upstream failures raise DataUnavailable. A failed cast fetch is an error, not
an empty feed, so nobody is scored against zeroed metrics.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

import requests

from errors import DataUnavailable, NinerError, NotFound
from http_client import build_plain_session, get_thread_session, request_json
from scoring import SocialMetrics


logger = logging.getLogger(__name__)

NEYNAR_API_URL = os.getenv("NEYNAR_API_URL", "https://api.neynar.com").rstrip("/")
CASTS_PAGE_LIMIT = 100


@dataclass(frozen=True)
class FarcasterProfile:
    fid: int
    username: str
    display_name: str | None = None
    pfp_url: str | None = None
    bio: str = ""
    follower_count: int = 0
    following_count: int = 0
    power_badge: bool = False
    verified_addresses: list[str] = field(default_factory=list)

    @classmethod
    def from_neynar(cls, user: dict) -> "FarcasterProfile":
        profile = user.get("profile") or {}
        bio = (profile.get("bio") or {}).get("text") or ""
        verified = (user.get("verified_addresses") or {}).get("eth_addresses") or []
        return cls(
            fid=int(user.get("fid") or 0),
            username=str(user.get("username") or ""),
            display_name=user.get("display_name"),
            pfp_url=user.get("pfp_url"),
            bio=bio,
            follower_count=int(user.get("follower_count") or 0),
            following_count=int(user.get("following_count") or 0),
            power_badge=bool(user.get("power_badge")),
            verified_addresses=[str(a).lower() for a in verified],
        )

    def to_dict(self) -> dict:
        return {
            "fid": self.fid,
            "username": self.username,
            "display_name": self.display_name,
            "pfp_url": self.pfp_url,
            "bio": self.bio,
            "follower_count": self.follower_count,
            "following_count": self.following_count,
            "power_badge": self.power_badge,
            "verified_addresses": list(self.verified_addresses),
        }


def summarize_casts(casts: list[dict]) -> dict[str, int]:
    """Count casts, replies (casts with a parent) and reactions received."""
    totals = {"total_casts": 0, "total_replies": 0, "total_recasts": 0, "total_likes": 0}
    for cast in casts:
        if not isinstance(cast, dict):
            continue
        totals["total_casts"] += 1
        if cast.get("parent_hash"):
            totals["total_replies"] += 1
        reactions = cast.get("reactions") or {}
        totals["total_recasts"] += int(reactions.get("recasts_count") or 0)
        totals["total_likes"] += int(reactions.get("likes_count") or 0)
    return totals


def build_neynar_session(api_key: str) -> requests.Session:
    session = build_plain_session()
    session.headers.update(
        {
            "x-api-key": api_key,
            # Neynar can reject the default python-requests UA with HTTP 403.
            "user-agent": "Mozilla/5.0 (compatible; niner-score/1.0)",
        }
    )
    return session


class NeynarClient:
    def __init__(self, api_key: str, base_url: str = NEYNAR_API_URL, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or get_thread_session("neynar", lambda: build_neynar_session(api_key))

    def _get(self, path: str, params: dict) -> tuple[int, dict]:
        return request_json(self.session, f"{self.base_url}{path}", params)

    def fetch_user(self, fid: int) -> FarcasterProfile:
        status, payload = self._get("/v2/farcaster/user/bulk", {"fids": fid})
        if status == 404:
            raise NotFound("User not found")
        if status >= 400:
            logger.error("Neynar user/bulk error for fid %s: HTTP %s", fid, status)
            raise DataUnavailable("Failed to verify user identity")
        users = payload.get("users") or []
        if not users:
            raise NotFound("User not found")
        return FarcasterProfile.from_neynar(users[0])

    def lookup_by_username(self, username: str) -> FarcasterProfile:
        status, payload = self._get("/v2/farcaster/user/by_username", {"username": username.strip().lower()})
        if status == 404:
            raise NotFound("User not found on Farcaster")
        if status >= 400:
            logger.error("Neynar user/by_username error for %s: HTTP %s", username, status)
            raise DataUnavailable("Failed to look up user")
        user = payload.get("user")
        if not user:
            raise NotFound("User not found on Farcaster")
        return FarcasterProfile.from_neynar(user)

    def fetch_casts(self, fid: int, limit: int = CASTS_PAGE_LIMIT) -> list[dict]:
        status, payload = self._get("/v2/farcaster/feed/user/casts", {"fid": fid, "limit": limit})
        if status >= 400:
            logger.error("Neynar feed/user/casts error for fid %s: HTTP %s", fid, status)
            raise DataUnavailable("Failed to fetch user casts")
        return payload.get("casts") or []

    def fetch_social_metrics(self, profile: FarcasterProfile) -> SocialMetrics:
        totals = summarize_casts(self.fetch_casts(profile.fid))
        return SocialMetrics.from_counts(
            follower_count=profile.follower_count,
            following_count=profile.following_count,
            power_badge=profile.power_badge,
            **totals,
        )


def get_client() -> NeynarClient:
    api_key = os.getenv("NEYNAR_API_KEY", "").strip()
    if not api_key:
        logger.error("NEYNAR_API_KEY is not configured")
        raise NinerError("Server configuration error")
    return NeynarClient(api_key)
