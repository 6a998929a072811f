from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

# Storage and defaults are applied in app.py via app.config (RATELIMIT_*).
limiter = Limiter(key_func=get_remote_address)
