import time

from flask_jwt_extended import JWTManager
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.dialects.postgresql import JSONB

db = SQLAlchemy()
jwt = JWTManager()

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONType = db.JSON().with_variant(JSONB(), "postgresql")

DAY_MS = 24 * 60 * 60 * 1000


def now_ms():
    """Current time as epoch milliseconds, the format every timestamp is stored in."""
    return int(time.time() * 1000)
