"""In-memory movie catalog. Lookups preserve load order."""
import logging
from typing import Iterable

from .models import Movie

logger = logging.getLogger(__name__)


class Catalog:
    """
    Holds every known movie, keyed by id.

    ``all()`` and every filtered lookup return movies in the order they were
    added, which is what the ranking strategies use as their tie-break.
    """

    def __init__(self, movies: Iterable[Movie] | None = None):
        self._movies: dict[str, Movie] = {}
        for movie in movies or []:
            self.add(movie)

    def add(self, movie: Movie) -> None:
        """Add a movie. A movie with an existing id replaces it in place."""
        if movie.id in self._movies:
            logger.debug(f"Replacing catalog entry {movie.id}")
        self._movies[movie.id] = movie

    def by_id(self, movie_id: str) -> Movie | None:
        return self._movies.get(movie_id)

    def all(self) -> list[Movie]:
        return list(self._movies.values())

    def by_genre(self, genre: str) -> list[Movie]:
        """Case-insensitive exact genre match."""
        wanted = genre.casefold()
        return [m for m in self._movies.values() if m.genre.casefold() == wanted]

    def by_ids(self, movie_ids: Iterable[str]) -> list[Movie]:
        """Resolve ids in the given order, skipping any that are unknown."""
        return [self._movies[i] for i in movie_ids if i in self._movies]

    def search_by_title(self, keyword: str) -> list[Movie]:
        needle = keyword.casefold()
        return [m for m in self._movies.values() if needle in m.title.casefold()]

    def by_year_range(self, start_year: int, end_year: int) -> list[Movie]:
        return [m for m in self._movies.values() if start_year <= m.year <= end_year]

    def by_min_rating(self, min_rating: float) -> list[Movie]:
        return [m for m in self._movies.values() if m.rating >= min_rating]

    def genres(self) -> list[str]:
        """Distinct genres in first-seen order."""
        return list(dict.fromkeys(m.genre for m in self._movies.values()))

    def __contains__(self, movie_id: object) -> bool:
        return movie_id in self._movies

    def __len__(self) -> int:
        return len(self._movies)
