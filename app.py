from dotenv import load_dotenv
load_dotenv()

import logging
import os
from datetime import datetime

from flask import Flask, jsonify, request
from flask_cors import CORS
from sqlalchemy import text
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from challenge_store import create_challenge_store
from errors import NinerError
from extensions import db, limiter


def setup_logging() -> None:
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


setup_logging()

IS_PRODUCTION = bool(os.getenv("RENDER") or os.getenv("FLASK_ENV") == "production")

app = Flask(__name__)

secret_key = os.getenv("SECRET_KEY") or os.getenv("FLASK_SECRET_KEY")
if not secret_key:
    # Dev fallback only; refused in production below.
    secret_key = "dev-secret-key-change-me"
if IS_PRODUCTION and secret_key.startswith("dev-secret-key-change"):
    raise RuntimeError("SECRET_KEY must be set to a strong random value in production.")
app.config["SECRET_KEY"] = secret_key

# Behind a single reverse-proxy hop in production.
if IS_PRODUCTION:
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

_db_url = os.getenv("DATABASE_URL")
if not _db_url:
    if IS_PRODUCTION:
        raise RuntimeError("DATABASE_URL missing in production; refusing to use SQLite.")
    _db_url = "sqlite:///niner.db"

if _db_url.startswith("postgres://"):
    _db_url = _db_url.replace("postgres://", "postgresql://", 1)

app.config["SQLALCHEMY_DATABASE_URI"] = _db_url
app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
    "pool_recycle": 300,
    "pool_pre_ping": True,
}

# Rate limiting: set RATE_LIMIT_STORAGE_URL to Redis when running several instances.
app.config["RATELIMIT_ENABLED"] = os.getenv("RATELIMIT_ENABLED", "1") == "1"
app.config["RATELIMIT_STORAGE_URI"] = os.getenv("RATE_LIMIT_STORAGE_URL", "memory://")
app.config["RATELIMIT_DEFAULT"] = "2000 per day;300 per hour"

ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:8080").split(",")
    if o.strip()
]

db.init_app(app)
limiter.init_app(app)
CORS(app, origins=ALLOWED_ORIGINS, supports_credentials=True)

# Wallet-link nonces; Redis-backed when REDIS_URL is set.
app.extensions["challenge_store"] = create_challenge_store(os.getenv("REDIS_URL") or None)


@app.after_request
def add_perf_headers(resp):
    path = request.path or ""
    if path.startswith("/api/"):
        resp.headers.setdefault("Cache-Control", "no-store")
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    return resp


# ==================== ERRORS ====================

@app.errorhandler(NinerError)
def handle_niner_error(exc: NinerError):
    if exc.status_code >= 500:
        app.logger.error("%s: %s", exc.code, exc.message)
    return jsonify(exc.to_dict()), exc.status_code


@app.errorhandler(HTTPException)
def handle_http_error(exc: HTTPException):
    # Keep API responses JSON (the frontend always parses them).
    code = (exc.name or "error").lower().replace(" ", "_")
    return jsonify({"success": False, "error": exc.description, "code": code}), exc.code


@app.errorhandler(Exception)
def handle_unexpected_error(exc: Exception):
    app.logger.exception("Unhandled error on %s", request.path)
    return jsonify({"success": False, "error": "An unexpected error occurred", "code": "internal_error"}), 500


# ==================== HEALTH CHECK ====================

@app.route("/api/health", methods=["GET"])
@limiter.exempt
def health_check():
    try:
        db.session.execute(text("SELECT 1"))
        return jsonify({
            "success": True,
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "database": "connected",
            "version": "1.0.0",
        })
    except Exception as e:
        app.logger.exception("Health check failed")
        return jsonify({
            "success": False,
            "status": "unhealthy",
            "error": str(e),
            "timestamp": datetime.utcnow().isoformat(),
        }), 500


# Blueprints and models are imported after `db` is bound to the app.
from models_leaderboard import ActivityEvent, LeaderboardEntry, WalletLink  # noqa: F401,E402
from leaderboard_api import leaderboard_api  # noqa: E402
from wallets_api import wallets_api  # noqa: E402
from farcaster_api import farcaster_api  # noqa: E402

app.register_blueprint(leaderboard_api)
app.register_blueprint(wallets_api)
app.register_blueprint(farcaster_api)

with app.app_context():
    db.create_all()

if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_ENV", "development") == "development"

    print("=" * 60)
    print("Niner Score API")
    print("=" * 60)
    print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1]}")
    print(f"Leaderboard: http://localhost:{port}/api/leaderboard")
    print(f"Activity feed: http://localhost:{port}/api/activity")
    print("=" * 60)

    app.run(host="0.0.0.0", port=port, debug=debug)
