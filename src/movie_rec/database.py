import csv
import sqlite3
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from .catalog import Catalog
from .models import Account, History, Movie, Tier, Watchlist, TYPE_FEATURE, TYPE_SHORT
from .config import DB_PATH, IMPORT_CHUNK_SIZE, DEFAULT_DURATION, SHORT_FILM_DURATION

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Thread-safe SQLite connection pool.

    - One connection per thread (SQLite threading requirement)
    - Explicit transaction nesting tracking
    """

    def __init__(self, db_path):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._transaction_depth: dict[int, int] = {}

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection for the current thread, creating if necessary."""
        thread_id = threading.get_ident()
        with self._lock:
            conn = self._connections.get(thread_id)
            if conn is None:
                conn = self._create_connection()
                self._connections[thread_id] = conn
                self._transaction_depth[thread_id] = 0
                logger.debug(f"Created connection for thread {thread_id} (pool size: {len(self._connections)})")
            return conn

    def get_transaction_depth(self) -> int:
        return self._transaction_depth.get(threading.get_ident(), 0)

    def increment_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._transaction_depth[thread_id] = self._transaction_depth.get(thread_id, 0) + 1

    def decrement_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            depth = self._transaction_depth.get(thread_id, 1)
            self._transaction_depth[thread_id] = max(0, depth - 1)

    def close_all(self):
        """Close all connections (call on application shutdown)."""
        with self._lock:
            for thread_id, conn in list(self._connections.items()):
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for thread {thread_id}: {e}")
            self._connections.clear()
            self._transaction_depth.clear()
            logger.debug("Connection pool closed")


_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> ConnectionPool:
    """Pool for DB_PATH, opened on first use."""
    global _pool
    with _pool_lock:
        if _pool is None:
            DB_PATH.parent.mkdir(exist_ok=True, parents=True)
            _pool = ConnectionPool(DB_PATH)
        return _pool


@contextmanager
def get_db(read_only: bool = False):
    """
    Yield this thread's connection inside a transaction.

    Catalog and account writes nest freely: the outermost block owns the
    transaction and commits it (unless `read_only`), or rolls it back when
    anything raises.
    """
    pool = _get_pool()
    owns_transaction = pool.get_transaction_depth() == 0
    conn = pool.get_connection()
    pool.increment_transaction_depth()
    try:
        yield conn
    except Exception:
        if owns_transaction:
            conn.rollback()
        raise
    else:
        if owns_transaction and not read_only:
            conn.commit()
    finally:
        pool.decrement_transaction_depth()


def close_pool() -> None:
    """Close every pooled connection; the next get_db() reopens DB_PATH."""
    global _pool
    if _pool is not None:
        _pool.close_all()
        _pool = None


def init_db() -> None:
    DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS movies (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                genre TEXT NOT NULL,
                year INTEGER NOT NULL,
                rating REAL NOT NULL,
                movie_type TEXT DEFAULT 'feature',
                duration INTEGER DEFAULT 120
            );

            CREATE TABLE IF NOT EXISTS accounts (
                username TEXT PRIMARY KEY,
                password_hash TEXT NOT NULL,
                tier TEXT NOT NULL DEFAULT 'basic',
                created_at TEXT
            );

            -- History and watchlist rows keep the account's ordering in `position`
            CREATE TABLE IF NOT EXISTS history (
                username TEXT NOT NULL REFERENCES accounts(username) ON DELETE CASCADE,
                movie_id TEXT NOT NULL,
                watch_date TEXT,
                position INTEGER NOT NULL,
                PRIMARY KEY (username, movie_id)
            );

            CREATE TABLE IF NOT EXISTS watchlist (
                username TEXT NOT NULL REFERENCES accounts(username) ON DELETE CASCADE,
                movie_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                PRIMARY KEY (username, movie_id)
            );

            CREATE INDEX IF NOT EXISTS idx_movies_genre ON movies(genre);
            CREATE INDEX IF NOT EXISTS idx_movies_year_rating ON movies(year, rating);
            CREATE INDEX IF NOT EXISTS idx_history_user ON history(username, position);
            CREATE INDEX IF NOT EXISTS idx_watchlist_user ON watchlist(username, position);
        """)


# Movies ---------------------------------------------------------------------

def upsert_movies(movies: list[Movie]) -> int:
    """
    Insert or update movies. Existing ids keep their original load position.

    Returns:
        Number of movies written
    """
    with get_db() as conn:
        for i in range(0, len(movies), IMPORT_CHUNK_SIZE):
            chunk = movies[i:i + IMPORT_CHUNK_SIZE]
            conn.executemany("""
                INSERT INTO movies (id, title, genre, year, rating, movie_type, duration)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    genre = excluded.genre,
                    year = excluded.year,
                    rating = excluded.rating,
                    movie_type = excluded.movie_type,
                    duration = excluded.duration
            """, [(m.id, m.title, m.genre, m.year, m.rating, m.movie_type, m.duration) for m in chunk])
    return len(movies)


def _movie_from_row(row) -> Movie:
    return Movie(
        id=row['id'],
        title=row['title'],
        genre=row['genre'],
        year=int(row['year']),
        rating=float(row['rating']),
        movie_type=row['movie_type'] or TYPE_FEATURE,
        duration=row['duration'] if row['duration'] is not None else DEFAULT_DURATION,
    )


def load_catalog() -> Catalog:
    """Load every stored movie, in insertion order."""
    with get_db(read_only=True) as conn:
        rows = conn.execute("""
            SELECT id, title, genre, year, rating, movie_type, duration
            FROM movies
            ORDER BY rowid
        """).fetchall()
    catalog = Catalog(_movie_from_row(row) for row in rows)
    logger.debug(f"Loaded {len(catalog)} movies")
    return catalog


def parse_movie_csv(path: str | Path) -> tuple[list[Movie], int]:
    """
    Parse a catalog CSV with a header row.

    Columns: id, title, genre, year, rating, and optionally movie_type and
    duration. Rows that are short or fail to parse are skipped.

    Returns:
        (movies, number of skipped rows)
    """
    movies: list[Movie] = []
    skipped = 0

    with open(path, newline='', encoding='utf-8') as f:
        reader = csv.reader(f)
        next(reader, None)  # header
        for line_no, fields in enumerate(reader, start=2):
            if not any(field.strip() for field in fields):
                continue
            if len(fields) < 5:
                logger.warning(f"Skipping line {line_no}: expected at least 5 fields, got {len(fields)}")
                skipped += 1
                continue
            try:
                movie_type = fields[5].strip().lower() if len(fields) > 5 and fields[5].strip() else TYPE_FEATURE
                if len(fields) > 6 and fields[6].strip():
                    duration = int(fields[6].strip())
                else:
                    duration = SHORT_FILM_DURATION if movie_type == TYPE_SHORT else DEFAULT_DURATION
                movies.append(Movie(
                    id=fields[0].strip(),
                    title=fields[1].strip(),
                    genre=fields[2].strip(),
                    year=int(fields[3].strip()),
                    rating=float(fields[4].strip()),
                    movie_type=movie_type,
                    duration=duration,
                ))
            except ValueError as e:
                logger.warning(f"Skipping line {line_no}: {e}")
                skipped += 1

    return movies, skipped


# Accounts -------------------------------------------------------------------

def account_exists(username: str) -> bool:
    with get_db(read_only=True) as conn:
        row = conn.execute("SELECT 1 FROM accounts WHERE username = ?", (username,)).fetchone()
    return row is not None


def save_account(account: Account) -> None:
    """Write the account row and replace its history and watchlist."""
    with get_db() as conn:
        conn.execute("""
            INSERT INTO accounts (username, password_hash, tier, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(username) DO UPDATE SET
                password_hash = excluded.password_hash,
                tier = excluded.tier
        """, (account.username, account.password_hash, account.tier.value, datetime.now().isoformat()))

        conn.execute("DELETE FROM history WHERE username = ?", (account.username,))
        conn.executemany(
            "INSERT INTO history (username, movie_id, watch_date, position) VALUES (?, ?, ?, ?)",
            [
                (account.username, movie_id, watch_date, position)
                for position, (movie_id, watch_date) in enumerate(account.history.items())
            ],
        )

        conn.execute("DELETE FROM watchlist WHERE username = ?", (account.username,))
        conn.executemany(
            "INSERT INTO watchlist (username, movie_id, position) VALUES (?, ?, ?)",
            [
                (account.username, movie_id, position)
                for position, movie_id in enumerate(account.saved_ids())
            ],
        )


def _account_from_rows(row, history_rows, watchlist_rows) -> Account:
    history = History()
    for h in history_rows:
        history.add(h['movie_id'], h['watch_date'])
    return Account(
        username=row['username'],
        password_hash=row['password_hash'],
        tier=Tier.parse(row['tier']),
        history=history,
        watchlist=Watchlist([w['movie_id'] for w in watchlist_rows]),
    )


def load_account(username: str) -> Account | None:
    with get_db(read_only=True) as conn:
        row = conn.execute(
            "SELECT username, password_hash, tier FROM accounts WHERE username = ?",
            (username,),
        ).fetchone()
        if row is None:
            return None
        history_rows = conn.execute(
            "SELECT movie_id, watch_date FROM history WHERE username = ? ORDER BY position",
            (username,),
        ).fetchall()
        watchlist_rows = conn.execute(
            "SELECT movie_id FROM watchlist WHERE username = ? ORDER BY position",
            (username,),
        ).fetchall()
    return _account_from_rows(row, history_rows, watchlist_rows)


def load_accounts() -> list[Account]:
    with get_db(read_only=True) as conn:
        usernames = [
            r['username'] for r in conn.execute("SELECT username FROM accounts ORDER BY username")
        ]
    return [account for account in map(load_account, usernames) if account is not None]


def delete_account(username: str) -> bool:
    with get_db() as conn:
        conn.execute("DELETE FROM history WHERE username = ?", (username,))
        conn.execute("DELETE FROM watchlist WHERE username = ?", (username,))
        cursor = conn.execute("DELETE FROM accounts WHERE username = ?", (username,))
    return cursor.rowcount > 0


def count_rows() -> dict[str, int]:
    """Row counts per table, for the stats command."""
    with get_db(read_only=True) as conn:
        return {
            table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            for table in ("movies", "accounts", "history", "watchlist")
        }
