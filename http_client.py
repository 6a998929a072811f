from __future__ import annotations

import logging
import threading
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import DataUnavailable


logger = logging.getLogger(__name__)

_thread_local = threading.local()


def build_plain_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"accept": "application/json"})

    retry = Retry(
        total=3,
        connect=3,
        read=3,
        backoff_factor=0.2,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=16, pool_maxsize=16)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def get_thread_session(name: str, factory) -> requests.Session:
    """One session per (thread, name); requests.Session is not thread-safe."""
    sessions = getattr(_thread_local, "sessions", None)
    if sessions is None:
        sessions = {}
        _thread_local.sessions = sessions
    session = sessions.get(name)
    if session is None:
        session = factory()
        sessions[name] = session
    return session


def request_json(
    session: requests.Session,
    url: str,
    params: dict[str, Any] | None = None,
    timeout: int = 15,
) -> tuple[int, dict[str, Any]]:
    """GET a JSON document. Returns (status_code, payload).

    Transport errors and undecodable bodies raise DataUnavailable; HTTP error
    statuses are returned so callers can map 404s themselves.
    """
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.RequestException as exc:
        logger.warning("GET %s failed: %s", url, exc)
        raise DataUnavailable("Upstream request failed") from exc

    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    return response.status_code, payload
