"""Base chain activity for a set of wallets.

Balances and nonces come straight from the public Base JSON-RPC endpoint.
NFT holdings and contract interactions are estimated from the transaction
count (there is no indexer behind this); recent transfers for display come
from Basescan when BASESCAN_API_KEY is set.
"""

from __future__ import annotations

import json
import logging
import os
from urllib import request as urlrequest
from urllib.error import URLError

from errors import DataUnavailable, NotVerified
from http_client import build_plain_session, get_thread_session, request_json
from scoring import ChainActivity, ChainTransaction


logger = logging.getLogger(__name__)

BASE_RPC_URL = os.getenv("BASE_RPC_URL", "https://mainnet.base.org").strip()
BASESCAN_API_URL = os.getenv("BASESCAN_API_URL", "https://api.basescan.org/api").strip()
BASESCAN_API_KEY = os.getenv("BASESCAN_API_KEY", "").strip()
NINER_NFT_CONTRACT = os.getenv("NINER_NFT_CONTRACT", "").strip().lower()

RECENT_TX_LIMIT = 10
WEI_PER_ETH = 10**18


# -------------------------------
# Simple JSON-RPC helper (no web3.py)
# -------------------------------
def _rpc_post(url: str, method: str, params=None, timeout=12):
    params = params or []
    payload = json.dumps({"jsonrpc": "2.0", "id": 1, "method": method, "params": params}).encode("utf-8")
    req = urlrequest.Request(url, data=payload, headers={"Content-Type": "application/json"})
    with urlrequest.urlopen(req, timeout=timeout) as resp:
        data = json.loads(resp.read().decode("utf-8"))
    if "error" in data:
        raise RuntimeError(data["error"])
    return data.get("result")


def _hex_to_int(x):
    if x is None:
        return 0
    return int(x, 16)


def _normalize_addr(a: str) -> str:
    return (a or "").lower()


def _rpc(method: str, params: list):
    try:
        return _rpc_post(BASE_RPC_URL, method, params)
    except (URLError, OSError, ValueError, RuntimeError) as exc:
        logger.warning("Base RPC %s failed: %s", method, exc)
        raise DataUnavailable("Base chain data unavailable") from exc


def fetch_wallet_activity(address: str) -> ChainActivity:
    address = _normalize_addr(address)
    balance_wei = _hex_to_int(_rpc("eth_getBalance", [address, "latest"]))
    tx_count = _hex_to_int(_rpc("eth_getTransactionCount", [address, "latest"]))
    return ChainActivity(
        balance_wei=balance_wei,
        balance_eth=balance_wei / WEI_PER_ETH,
        transaction_count=tx_count,
        # Estimates: active wallets tend to hold more NFTs; most txs hit contracts.
        nft_count=tx_count // 10,
        contract_interactions=int(tx_count * 0.7),
    )


def _tx_type(tx: dict, address: str) -> str:
    tx_input = tx.get("input") or "0x"
    if tx_input not in ("0x", ""):
        return "contract"
    if _normalize_addr(tx.get("from")) == address:
        return "send"
    return "receive"


def fetch_recent_transactions(address: str, limit: int = RECENT_TX_LIMIT) -> list[ChainTransaction]:
    """Latest transfers for display. Empty when Basescan is not configured or fails."""
    if not BASESCAN_API_KEY:
        return []
    address = _normalize_addr(address)
    session = get_thread_session("basescan", build_plain_session)
    params = {
        "module": "account",
        "action": "txlist",
        "address": address,
        "page": 1,
        "offset": limit,
        "sort": "desc",
        "apikey": BASESCAN_API_KEY,
    }
    try:
        status, payload = request_json(session, BASESCAN_API_URL, params)
    except DataUnavailable:
        return []
    rows = payload.get("result") if status < 400 else None
    if not isinstance(rows, list):
        logger.info("Basescan returned no transactions for %s: %s", address, payload.get("message"))
        return []

    out = []
    for tx in rows[:limit]:
        if not isinstance(tx, dict):
            continue
        try:
            out.append(
                ChainTransaction(
                    hash=str(tx.get("hash") or ""),
                    from_address=_normalize_addr(tx.get("from")),
                    to_address=_normalize_addr(tx.get("to")),
                    value=f"{int(tx.get('value') or 0) / WEI_PER_ETH:.6f}",
                    timestamp=int(tx.get("timeStamp") or 0),
                    type=_tx_type(tx, address),
                )
            )
        except (TypeError, ValueError, AttributeError):
            logger.info("Skipping malformed Basescan row for %s: %r", address, tx.get("hash"))
    return out


def fetch_chain_activity(addresses: list[str]) -> ChainActivity:
    """Aggregate activity across wallets; the first wallet is the primary one.

    Any wallet failing raises DataUnavailable rather than scoring a partial set.
    """
    if not addresses:
        raise ValueError("at least one address is required")

    balance_wei = tx_count = nft_count = contract_count = 0
    for address in addresses:
        wallet = fetch_wallet_activity(address)
        balance_wei += wallet.balance_wei
        tx_count += wallet.transaction_count
        nft_count += wallet.nft_count
        contract_count += wallet.contract_interactions

    return ChainActivity(
        balance_wei=balance_wei,
        balance_eth=balance_wei / WEI_PER_ETH,
        transaction_count=tx_count,
        nft_count=nft_count,
        contract_interactions=contract_count,
        recent_transactions=fetch_recent_transactions(addresses[0]),
    )


def verify_mint_transaction(tx_hash: str) -> dict:
    """Confirm a mint transaction landed successfully (and hit the NFT contract when configured)."""
    receipt = _rpc("eth_getTransactionReceipt", [tx_hash])
    if not receipt or receipt.get("status") is None:
        raise NotVerified("Mint transaction not found yet")
    if _hex_to_int(receipt.get("status")) != 1:
        raise NotVerified("Mint transaction failed")
    if NINER_NFT_CONTRACT and _normalize_addr(receipt.get("to")) != NINER_NFT_CONTRACT:
        raise NotVerified("Transaction is not a Niner NFT mint")
    return receipt
