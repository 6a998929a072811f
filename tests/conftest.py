import os
import tempfile

# Configure before app.py is imported (it reads env at import time).
_DB_DIR = tempfile.mkdtemp(prefix="niner-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["RATELIMIT_ENABLED"] = "0"
os.environ["VERIFY_MINT_TX"] = "0"
os.environ["NEYNAR_API_KEY"] = "test-key"
for _var in ("REDIS_URL", "BASESCAN_API_KEY", "NINER_NFT_CONTRACT", "RENDER", "FLASK_ENV"):
    os.environ.pop(_var, None)

import pytest

import neynar
from app import app as flask_app
from errors import DataUnavailable, NotFound
from extensions import db
from neynar import FarcasterProfile
from scoring import ChainActivity, SocialMetrics


class FakeProvider:
    """In-memory stand-in for NeynarClient."""

    def __init__(self):
        self.profiles = {}
        self.metrics = {}
        self.fail_casts = False
        self.calls = []

    def add_user(self, fid, username, metrics=None, verified_addresses=(), display_name=None, pfp_url=None):
        metrics = metrics or SocialMetrics()
        self.profiles[fid] = FarcasterProfile(
            fid=fid,
            username=username,
            display_name=display_name or username.title(),
            pfp_url=pfp_url or f"https://img.example/{fid}.png",
            follower_count=metrics.follower_count,
            following_count=metrics.following_count,
            power_badge=metrics.power_badge,
            verified_addresses=[a.lower() for a in verified_addresses],
        )
        self.metrics[fid] = metrics
        return self.profiles[fid]

    def set_metrics(self, fid, metrics):
        profile = self.profiles[fid]
        self.add_user(
            fid,
            profile.username,
            metrics,
            verified_addresses=profile.verified_addresses,
            display_name=profile.display_name,
            pfp_url=profile.pfp_url,
        )

    def fetch_user(self, fid):
        self.calls.append(("fetch_user", fid))
        if fid not in self.profiles:
            raise NotFound("User not found")
        return self.profiles[fid]

    def lookup_by_username(self, username):
        for profile in self.profiles.values():
            if profile.username.lower() == username.lower():
                return profile
        raise NotFound("User not found on Farcaster")

    def fetch_social_metrics(self, profile):
        self.calls.append(("fetch_social_metrics", profile.fid))
        if self.fail_casts:
            raise DataUnavailable("Failed to fetch user casts")
        return self.metrics[profile.fid]


class FakeChain:
    def __init__(self, activity=None):
        self.activity = activity or ChainActivity()
        self.requested = []

    def fetch_chain_activity(self, addresses):
        self.requested.append(list(addresses))
        return self.activity


def metrics_for_score(score):
    """A few hand-built metric sets with known Niner Scores."""
    table = {
        0: SocialMetrics(),
        490: SocialMetrics(follower_count=500, total_casts=100, total_replies=45),
        510: SocialMetrics(follower_count=500, total_casts=100, total_replies=50, total_likes=20),
        890: SocialMetrics(
            follower_count=1000,
            following_count=200,
            total_casts=100,
            total_replies=20,
            total_recasts=50,
            total_likes=300,
            power_badge=True,
        ),
    }
    return table[score]


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def provider(monkeypatch):
    fake = FakeProvider()
    monkeypatch.setattr(neynar, "get_client", lambda: fake)
    return fake


@pytest.fixture
def chain():
    return FakeChain()
