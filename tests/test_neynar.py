import pytest
import requests

import neynar
from errors import DataUnavailable, NinerError, NotFound
from neynar import FarcasterProfile, NeynarClient, summarize_casts


NEYNAR_USER = {
    "fid": 42,
    "username": "alice",
    "display_name": "Alice",
    "pfp_url": "https://img.example/42.png",
    "profile": {"bio": {"text": "gm"}},
    "follower_count": 1000,
    "following_count": 200,
    "power_badge": True,
    "verified_addresses": {"eth_addresses": ["0x" + "AB" * 20]},
}


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        route = self.routes[url.split("/v2/farcaster", 1)[1]]
        if isinstance(route, Exception):
            raise route
        return route


def _client(routes):
    session = FakeSession(routes)
    return NeynarClient("key", base_url="https://neynar.test", session=session), session


def test_profile_from_neynar():
    profile = FarcasterProfile.from_neynar(NEYNAR_USER)
    assert profile.fid == 42
    assert profile.bio == "gm"
    assert profile.power_badge is True
    assert profile.verified_addresses == ["0x" + "ab" * 20]


def test_summarize_casts():
    casts = [
        {"hash": "a", "reactions": {"likes_count": 10, "recasts_count": 2}},
        {"hash": "b", "parent_hash": "x", "reactions": {"likes_count": 1}},
        {"hash": "c"},
        "not-a-cast",
    ]
    assert summarize_casts(casts) == {"total_casts": 3, "total_replies": 1, "total_recasts": 2, "total_likes": 11}


def test_fetch_user_and_metrics():
    casts = [{"reactions": {"likes_count": 300, "recasts_count": 50}}] + [{} for _ in range(99)]
    client, session = _client(
        {
            "/user/bulk": FakeResponse(200, {"users": [NEYNAR_USER]}),
            "/feed/user/casts": FakeResponse(200, {"casts": casts}),
        }
    )

    profile = client.fetch_user(42)
    metrics = client.fetch_social_metrics(profile)

    assert session.requests[0] == ("https://neynar.test/v2/farcaster/user/bulk", {"fids": 42})
    assert metrics.follower_count == 1000
    assert metrics.total_casts == 100
    assert metrics.total_likes == 300
    assert metrics.total_recasts == 50
    assert metrics.power_badge is True


def test_unknown_user_is_not_found():
    client, _ = _client({"/user/bulk": FakeResponse(200, {"users": []})})
    with pytest.raises(NotFound):
        client.fetch_user(42)

    client, _ = _client({"/user/bulk": FakeResponse(404, {})})
    with pytest.raises(NotFound):
        client.fetch_user(42)


def test_upstream_errors_are_data_unavailable():
    client, _ = _client({"/user/bulk": FakeResponse(500, {})})
    with pytest.raises(DataUnavailable):
        client.fetch_user(42)

    client, _ = _client({"/user/bulk": requests.ConnectionError("boom")})
    with pytest.raises(DataUnavailable):
        client.fetch_user(42)


def test_failed_cast_fetch_is_not_an_empty_feed():
    client, _ = _client({"/feed/user/casts": FakeResponse(503, {})})
    with pytest.raises(DataUnavailable):
        client.fetch_social_metrics(FarcasterProfile(fid=42, username="alice"))


def test_undecodable_body_is_treated_as_empty():
    client, _ = _client({"/user/bulk": FakeResponse(200, ValueError("not json"))})
    with pytest.raises(NotFound):
        client.fetch_user(42)


def test_lookup_by_username_lowercases():
    client, session = _client({"/user/by_username": FakeResponse(200, {"user": NEYNAR_USER})})
    assert client.lookup_by_username(" Alice ").fid == 42
    assert session.requests[0][1] == {"username": "alice"}


def test_get_client_requires_api_key(monkeypatch):
    monkeypatch.delenv("NEYNAR_API_KEY", raising=False)
    with pytest.raises(NinerError) as excinfo:
        neynar.get_client()
    assert excinfo.value.status_code == 500
