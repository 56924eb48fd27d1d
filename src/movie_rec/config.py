"""
Tunable constants: database location, tier limits, strategy parameters and
password rules. Most can be overridden with a `MOVIE_REC_*` environment variable.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_number(key: str, default, cast=int, min_val=1):
    """Numeric override from `key`. Unparseable values give `default`; small ones are clamped to `min_val`."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        val = cast(raw)
    except ValueError:
        logger.warning(f"Ignoring {key}='{raw}', not a number; keeping {default}")
        return default
    if val < min_val:
        logger.warning(f"{key}={val} raised to {min_val}")
        return min_val
    return val


# Storage
DB_PATH = Path(os.environ.get("MOVIE_REC_DB", "data/movie_rec.db"))
IMPORT_CHUNK_SIZE = 500

# Tier limits
BASIC_MAX_WATCHLIST = _env_number("MOVIE_REC_BASIC_MAX_WATCHLIST", 10)
BASIC_MAX_RECOMMENDATIONS = _env_number("MOVIE_REC_BASIC_MAX_RECS", 5)
PREMIUM_MAX_WATCHLIST = _env_number("MOVIE_REC_PREMIUM_MAX_WATCHLIST", 100)
PREMIUM_MAX_RECOMMENDATIONS = _env_number("MOVIE_REC_PREMIUM_MAX_RECS", 20)

DEFAULT_RECOMMENDATION_LIMIT = 10

# Recent & Popular strategy
RECENT_YEAR_CUTOFF = _env_number("MOVIE_REC_RECENT_CUTOFF", 2015)

# Hybrid strategy. The reference year is fixed so scores stay reproducible.
REFERENCE_YEAR = _env_number("MOVIE_REC_REFERENCE_YEAR", 2025)
HYBRID_WEIGHTS = {
    'rating': 4.0,
    'genre': 4.0,
    'recency': 2.0,
}
RECENCY_BASE = 10.0
RECENCY_DECAY_PER_YEAR = _env_number("MOVIE_REC_RECENCY_DECAY", 0.3, float, 0.0)

# Movie model
DEFAULT_DURATION = 120  # minutes
SHORT_FILM_DURATION = 20
SHORT_FILM_MAX_MINUTES = 40  # Anything shorter counts as a short film

# Accounts
MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
PASSWORD_HASH_PREFIX = "$HASH$"
PASSWORD_HASH_ITERATIONS = _env_number("MOVIE_REC_HASH_ITERATIONS", 100_000)
