"""Request-shape checks shared by the API blueprints and the leaderboard operations.

All of these raise MalformedRequest before anything touches storage.
"""

from __future__ import annotations

import re

from errors import MalformedRequest


FID_MAX = 10_000_000_000

_USERNAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]{0,19}(\.eth)?$")
_WALLET_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")
_TOKEN_ID_RE = re.compile(r"^\d+-\d+$")

MAX_WALLETS = 10


def normalize_wallet(wallet: str) -> str:
    return (wallet or "").strip().lower()


def is_valid_wallet(wallet: str) -> bool:
    return bool(_WALLET_RE.match(wallet or ""))


def validate_fid(fid) -> int:
    # bool is an int subclass; "1" strings are rejected too.
    if isinstance(fid, bool) or not isinstance(fid, int):
        raise MalformedRequest("Invalid FID format")
    if fid <= 0 or fid >= FID_MAX:
        raise MalformedRequest("Invalid FID format")
    return fid


def validate_username(username) -> str:
    if not isinstance(username, str):
        raise MalformedRequest("Invalid username format")
    username = username.strip()
    if len(username) > 25 or not _USERNAME_RE.match(username):
        raise MalformedRequest("Invalid username format")
    return username


def validate_wallets(addresses) -> list[str]:
    """Normalize, validate and de-duplicate (order preserved) a list of wallets."""
    if not isinstance(addresses, (list, tuple)) or not addresses:
        raise MalformedRequest("wallet_addresses array is required")
    if len(addresses) > MAX_WALLETS:
        raise MalformedRequest(f"At most {MAX_WALLETS} wallet addresses are allowed")

    seen = []
    for raw in addresses:
        wallet = normalize_wallet(raw if isinstance(raw, str) else "")
        if not is_valid_wallet(wallet):
            raise MalformedRequest("Invalid wallet address", wallet=str(raw)[:64])
        if wallet not in seen:
            seen.append(wallet)
    return seen


def validate_base_score(base_score) -> int:
    if isinstance(base_score, bool) or not isinstance(base_score, int):
        raise MalformedRequest("Invalid base score")
    if base_score < 0 or base_score > 1000:
        raise MalformedRequest("Base score must be between 0 and 1000")
    return base_score


def validate_transaction_hash(tx_hash) -> str:
    if not isinstance(tx_hash, str) or not _TX_HASH_RE.match(tx_hash):
        raise MalformedRequest("Invalid transaction hash format")
    return tx_hash.lower()


def validate_token_id(token_id) -> str:
    if not isinstance(token_id, str) or not _TOKEN_ID_RE.match(token_id):
        raise MalformedRequest("Invalid token ID format")
    return token_id
