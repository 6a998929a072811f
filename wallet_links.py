"""Prove wallet ownership with a signed message and remember the fid/wallet link."""

from __future__ import annotations

import logging
import os
import secrets
from datetime import datetime

from eth_account import Account
from eth_account.messages import encode_defunct
from sqlalchemy.exc import IntegrityError

from errors import MalformedRequest, NotVerified
from extensions import db
from models_leaderboard import WalletLink
from validation import is_valid_wallet, normalize_wallet, validate_fid


logger = logging.getLogger(__name__)

CHALLENGE_TTL_SECONDS = int(os.getenv("CHALLENGE_TTL_SECONDS", "600"))


def _validate_wallet(wallet) -> str:
    wallet = normalize_wallet(wallet if isinstance(wallet, str) else "")
    if not is_valid_wallet(wallet):
        raise MalformedRequest("Invalid wallet")
    return wallet


def _challenge_key(fid: int, wallet: str) -> str:
    return f"{fid}:{wallet}"


def challenge_message(fid: int, wallet: str, nonce: str) -> str:
    return f"Link wallet {wallet} to Farcaster FID {fid} on Niner Score.\nNonce: {nonce}"


def issue_challenge(store, fid, wallet) -> dict:
    fid = validate_fid(fid)
    wallet = _validate_wallet(wallet)
    nonce = secrets.token_hex(16)
    store.put(_challenge_key(fid, wallet), nonce, CHALLENGE_TTL_SECONDS)
    return {
        "fid": fid,
        "wallet": wallet,
        "nonce": nonce,
        "message": challenge_message(fid, wallet, nonce),
        "expires_in": CHALLENGE_TTL_SECONDS,
    }


def verify_challenge(store, fid, wallet, signature) -> WalletLink:
    fid = validate_fid(fid)
    wallet = _validate_wallet(wallet)
    if not isinstance(signature, str) or not signature:
        raise MalformedRequest("Missing signature")

    # Consumed whatever the outcome; a failed attempt needs a fresh nonce.
    nonce = store.pop(_challenge_key(fid, wallet))
    if not nonce:
        raise NotVerified("Nonce expired")

    msg = encode_defunct(text=challenge_message(fid, wallet, nonce))
    try:
        recovered = Account.recover_message(msg, signature=signature)
    except Exception as exc:
        raise NotVerified("Bad signature") from exc

    if normalize_wallet(recovered) != wallet:
        raise NotVerified("Signature does not match wallet")

    link = WalletLink.query.filter_by(fid=fid, wallet=wallet).first()
    if link is None:
        link = WalletLink(fid=fid, wallet=wallet, verified_at=datetime.utcnow())
        db.session.add(link)
        try:
            db.session.commit()
        except IntegrityError:
            # Concurrent verify for the same pair already inserted it.
            db.session.rollback()
            link = WalletLink.query.filter_by(fid=fid, wallet=wallet).one()
    logger.info("Wallet %s linked to fid %s", wallet, fid)
    return link
