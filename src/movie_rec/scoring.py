"""
Shared scoring, filtering, and sorting primitives for the ranking strategies.

All sorts are stable: items that tie keep their input order, which for the
strategies is catalog order.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence, TypeVar

from .catalog import Catalog
from .models import Account, Movie

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class ScoredMovie:
    """A movie paired with a computed score."""
    movie: Movie
    score: float


def build_exclusion_set(account: Account) -> set[str]:
    """Ids the account already knows about: watched plus saved."""
    return set(account.history_ids()) | set(account.saved_ids())


def sort_descending_by_rating(movies: Iterable[Movie]) -> list[Movie]:
    return sorted(movies, key=lambda m: m.rating, reverse=True)


def sort_descending_by_score(scored: Iterable[ScoredMovie]) -> list[ScoredMovie]:
    return sorted(scored, key=lambda s: s.score, reverse=True)


def take_top_n(sequence: Sequence[T], n: int) -> list[T]:
    """First ``min(n, len(sequence))`` items; non-positive ``n`` yields nothing."""
    if n <= 0:
        return []
    return list(sequence[:n])


def tally_genres(movie_ids: Iterable[str], catalog: Catalog) -> dict[str, int]:
    """
    Count genres over the given movie ids, resolved through the catalog.

    Ids the catalog no longer knows are skipped. The returned dict keeps
    first-encountered genre order.
    """
    counts: dict[str, int] = {}
    for movie_id in movie_ids:
        movie = catalog.by_id(movie_id)
        if movie is None:
            logger.debug(f"Skipping unknown movie id {movie_id}")
            continue
        counts[movie.genre] = counts.get(movie.genre, 0) + 1
    return counts


def top_rated(account: Account, catalog: Catalog, count: int) -> list[Movie]:
    """Highest rated catalog movies the account has neither watched nor saved."""
    excluded = build_exclusion_set(account)
    candidates = [m for m in catalog.all() if m.id not in excluded]
    return take_top_n(sort_descending_by_rating(candidates), count)
