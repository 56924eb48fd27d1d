import logging

import numpy as np

from .catalog import Catalog
from .models import Account, Movie
from .scoring import (
    ScoredMovie,
    build_exclusion_set,
    sort_descending_by_rating,
    sort_descending_by_score,
    take_top_n,
    tally_genres,
    top_rated,
)
from .config import (
    RECENT_YEAR_CUTOFF,
    REFERENCE_YEAR,
    HYBRID_WEIGHTS,
    RECENCY_BASE,
    RECENCY_DECAY_PER_YEAR,
)

logger = logging.getLogger(__name__)


class RecommendationStrategy:
    """
    One ranking policy.

    Every strategy takes an account, the catalog, and a count, and returns an
    ordered list of at most ``n`` movies the account has neither watched nor
    saved.
    """
    name: str = ""
    description: str = ""
    requires_premium: bool = False

    def recommend(self, account: Account, catalog: Catalog, n: int) -> list[Movie]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class GenreBasedStrategy(RecommendationStrategy):
    """
    Recommend the best-rated unseen movies from the account's favourite genre.

    The favourite genre comes from the watch history, or from the watchlist
    when no watched movie resolves. Ties go to whichever genre was counted
    first. Short results are padded with top-rated movies; with no genre
    signal at all the whole result is top-rated.
    """
    name = "Genre-Based"
    description = "Recommends movies based on your favorite genres from watch history"
    requires_premium = False

    def favorite_genre(self, account: Account, catalog: Catalog) -> str | None:
        counts = tally_genres(account.history_ids(), catalog)
        if not counts:
            counts = tally_genres(account.saved_ids(), catalog)
        if not counts:
            return None
        # max() returns the first maximal key, i.e. first-encountered order
        return max(counts, key=counts.get)

    def recommend(self, account: Account, catalog: Catalog, n: int) -> list[Movie]:
        genre = self.favorite_genre(account, catalog)
        if genre is None:
            logger.debug(f"No genre signal for {account.username}, using top rated")
            return top_rated(account, catalog, n)

        excluded = build_exclusion_set(account)
        pool = [m for m in catalog.by_genre(genre) if m.id not in excluded]
        recommendations = take_top_n(sort_descending_by_rating(pool), n)

        if len(recommendations) < n:
            logger.debug(f"Only {len(recommendations)} '{genre}' picks, padding with top rated")
            for movie in top_rated(account, catalog, n):
                if len(recommendations) >= n:
                    break
                if movie not in recommendations:
                    recommendations.append(movie)

        return recommendations


class TopRatedStrategy(RecommendationStrategy):
    name = "Top Rated"
    description = "Recommends highest rated movies you haven't seen"
    requires_premium = False

    def recommend(self, account: Account, catalog: Catalog, n: int) -> list[Movie]:
        return top_rated(account, catalog, n)


class RecentPopularStrategy(RecommendationStrategy):
    name = "Recent & Popular"
    requires_premium = True

    def __init__(self, year_cutoff: int = RECENT_YEAR_CUTOFF):
        self.year_cutoff = year_cutoff
        self.description = f"Recommends highly rated movies from recent years ({year_cutoff}+)"

    def recommend(self, account: Account, catalog: Catalog, n: int) -> list[Movie]:
        excluded = build_exclusion_set(account)
        recent = [
            m for m in catalog.all()
            if m.id not in excluded and m.year >= self.year_cutoff
        ]
        return take_top_n(sort_descending_by_rating(recent), n)


class HybridStrategy(RecommendationStrategy):
    """
    Weighted blend of community rating, genre affinity, and recency.

    score = rating * 4
          + times_watched_in_genre * 4
          + max(0, 10 - years_old * 0.3) * 2

    ``years_old`` is measured against a fixed reference year rather than the
    clock so scores are reproducible.
    """
    name = "Smart Hybrid"
    description = "Advanced recommendation combining genre preference, rating, and recency"
    requires_premium = True

    def __init__(self, reference_year: int = REFERENCE_YEAR, weights: dict[str, float] | None = None):
        self.reference_year = reference_year
        self.weights = {**HYBRID_WEIGHTS, **(weights or {})}

    def score_movies(self, account: Account, catalog: Catalog) -> list[ScoredMovie]:
        """Score every movie the account has neither watched nor saved, in catalog order."""
        genre_counts = tally_genres(account.history_ids(), catalog)
        excluded = build_exclusion_set(account)
        candidates = [m for m in catalog.all() if m.id not in excluded]

        ratings = np.array([m.rating for m in candidates], dtype=np.float64)
        years = np.array([m.year for m in candidates], dtype=np.float64)
        affinity = np.array([genre_counts.get(m.genre, 0) for m in candidates], dtype=np.float64)

        recency = np.maximum(0.0, RECENCY_BASE - (self.reference_year - years) * RECENCY_DECAY_PER_YEAR)
        scores = (
            ratings * self.weights['rating']
            + affinity * self.weights['genre']
            + recency * self.weights['recency']
        )

        return [ScoredMovie(movie, float(score)) for movie, score in zip(candidates, scores)]

    def recommend(self, account: Account, catalog: Catalog, n: int) -> list[Movie]:
        ranked = sort_descending_by_score(self.score_movies(account, catalog))
        return [s.movie for s in take_top_n(ranked, n)]


def default_strategies() -> list[RecommendationStrategy]:
    """The registered strategies, in selection order."""
    return [
        GenreBasedStrategy(),
        TopRatedStrategy(),
        RecentPopularStrategy(),
        HybridStrategy(),
    ]
