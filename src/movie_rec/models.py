import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from .config import (
    BASIC_MAX_WATCHLIST,
    BASIC_MAX_RECOMMENDATIONS,
    PREMIUM_MAX_WATCHLIST,
    PREMIUM_MAX_RECOMMENDATIONS,
    DEFAULT_DURATION,
    SHORT_FILM_MAX_MINUTES,
)

logger = logging.getLogger(__name__)

TYPE_FEATURE = "feature"
TYPE_SHORT = "short"


@dataclass(frozen=True)
class Movie:
    """A catalog entry. Identity and equality are by ``id`` alone."""
    id: str
    title: str = field(compare=False)
    genre: str = field(compare=False)
    year: int = field(compare=False)
    rating: float = field(compare=False)
    movie_type: str = field(default=TYPE_FEATURE, compare=False)
    duration: int = field(default=DEFAULT_DURATION, compare=False)

    @property
    def is_short_film(self) -> bool:
        return self.movie_type == TYPE_SHORT or self.duration < SHORT_FILM_MAX_MINUTES

    @property
    def is_feature_film(self) -> bool:
        return not self.is_short_film

    @property
    def type_display_name(self) -> str:
        return "Short Film" if self.is_short_film else "Feature Film"

    @property
    def formatted_duration(self) -> str:
        hours, minutes = divmod(self.duration, 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"

    def detailed(self) -> str:
        return f"{self} | {self.type_display_name} | {self.formatted_duration}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "genre": self.genre,
            "year": self.year,
            "rating": self.rating,
            "movie_type": self.movie_type,
            "duration": self.duration,
        }

    def __str__(self) -> str:
        return f"[{self.id}] {self.title} ({self.year}) - {self.genre} | Rating: {self.rating:.1f}/10.0"


class History:
    """
    Watch history: movie id -> watch date, in first-watched order.

    Re-adding an id updates its date without moving it or growing the history.
    """

    def __init__(self):
        self._dates: dict[str, str] = {}

    def add(self, movie_id: str, watch_date: str) -> None:
        self._dates[movie_id] = watch_date

    def watch_date(self, movie_id: str) -> str | None:
        return self._dates.get(movie_id)

    def movie_ids(self) -> list[str]:
        return list(self._dates)

    def items(self) -> list[tuple[str, str]]:
        return list(self._dates.items())

    def clear(self) -> None:
        self._dates.clear()

    def __contains__(self, movie_id: object) -> bool:
        return movie_id in self._dates

    def __len__(self) -> int:
        return len(self._dates)


class Watchlist:
    """Movies saved for later. Ordered, no duplicates."""

    def __init__(self, movie_ids: list[str] | None = None):
        self._ids: list[str] = []
        for movie_id in movie_ids or []:
            self.add(movie_id)

    def add(self, movie_id: str) -> bool:
        if movie_id in self._ids:
            return False
        self._ids.append(movie_id)
        return True

    def remove(self, movie_id: str) -> bool:
        try:
            self._ids.remove(movie_id)
        except ValueError:
            return False
        return True

    def movie_ids(self) -> list[str]:
        return list(self._ids)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, movie_id: object) -> bool:
        return movie_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


class Tier(Enum):
    BASIC = "basic"
    PREMIUM = "premium"

    @property
    def max_watchlist(self) -> int:
        return PREMIUM_MAX_WATCHLIST if self is Tier.PREMIUM else BASIC_MAX_WATCHLIST

    @property
    def max_recommendations(self) -> int:
        return PREMIUM_MAX_RECOMMENDATIONS if self is Tier.PREMIUM else BASIC_MAX_RECOMMENDATIONS

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: "str | Tier | None") -> "Tier":
        """Unknown or missing values fall back to Basic."""
        if isinstance(value, Tier):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            logger.warning(f"Unknown tier '{value}', treating as basic")
            return cls.BASIC


@dataclass
class Account:
    """A registered user with watch history, watchlist, and tier."""
    username: str
    password_hash: str = ""
    tier: Tier = Tier.BASIC
    history: History = field(default_factory=History)
    watchlist: Watchlist = field(default_factory=Watchlist)

    def history_ids(self) -> list[str]:
        return self.history.movie_ids()

    def saved_ids(self) -> list[str]:
        return self.watchlist.movie_ids()

    def max_recommendations(self) -> int:
        return self.tier.max_recommendations

    def max_watchlist_size(self) -> int:
        return self.tier.max_watchlist

    def can_use_advanced_recommendations(self) -> bool:
        return self.tier is Tier.PREMIUM

    def add_to_watchlist(self, movie_id: str) -> bool:
        """Returns False when the watchlist is full or already holds the movie."""
        if len(self.watchlist) >= self.max_watchlist_size():
            return False
        return self.watchlist.add(movie_id)

    def remove_from_watchlist(self, movie_id: str) -> bool:
        return self.watchlist.remove(movie_id)

    def mark_as_watched(self, movie_id: str, watch_date: str | None = None) -> None:
        self.watchlist.remove(movie_id)
        self.history.add(movie_id, watch_date or date.today().isoformat())

    def __str__(self) -> str:
        return (
            f"{self.username} ({self.tier.display_name}) - "
            f"watchlist: {len(self.watchlist)}/{self.max_watchlist_size()}, "
            f"history: {len(self.history)}"
        )
