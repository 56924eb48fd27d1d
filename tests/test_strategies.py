import pytest

from movie_rec.catalog import Catalog
from movie_rec.models import Account, Movie, Tier
from movie_rec.scoring import build_exclusion_set, top_rated
from movie_rec.strategies import (
    GenreBasedStrategy,
    TopRatedStrategy,
    RecentPopularStrategy,
    HybridStrategy,
    default_strategies,
)


def _movie(movie_id, genre="Drama", year=2020, rating=7.0, title=None):
    return Movie(id=movie_id, title=title or f"Movie {movie_id}", genre=genre, year=year, rating=rating)


def _account(watched=(), saved=(), tier=Tier.PREMIUM):
    account = Account(username="tester", tier=tier)
    for movie_id in watched:
        account.history.add(movie_id, "2024-01-01")
    for movie_id in saved:
        account.watchlist.add(movie_id)
    return account


@pytest.fixture
def abc_catalog():
    return Catalog([
        _movie("A", genre="Drama", year=2020, rating=8.0),
        _movie("B", genre="Drama", year=2021, rating=9.0),
        _movie("C", genre="Comedy", year=2022, rating=7.0),
    ])


def _ids(movies):
    return [m.id for m in movies]


def test_genre_based_pads_with_top_rated_not_already_present(abc_catalog):
    recs = GenreBasedStrategy().recommend(_account(watched=["A"]), abc_catalog, 2)

    assert _ids(recs) == ["B", "C"]


def test_genre_based_without_signal_matches_top_rated(abc_catalog):
    account = _account()

    recs = GenreBasedStrategy().recommend(account, abc_catalog, 3)

    assert recs == top_rated(account, abc_catalog, 3)
    assert _ids(recs) == ["B", "A", "C"]


def test_genre_based_uses_watchlist_when_history_has_no_known_movies(abc_catalog):
    # "ghost" is not in the catalog, so the history yields no genre
    account = _account(watched=["ghost"], saved=["C"])
    catalog = Catalog(abc_catalog.all() + [_movie("D", genre="comedy", rating=5.0)])

    recs = GenreBasedStrategy().recommend(account, catalog, 1)

    # Comedy is matched case-insensitively; C is saved so only D remains
    assert _ids(recs) == ["D"]


def test_genre_based_tie_goes_to_first_counted_genre():
    catalog = Catalog([
        _movie("c1", genre="Comedy", rating=6.0),
        _movie("d1", genre="Drama", rating=6.0),
        _movie("c2", genre="Comedy", rating=5.0),
        _movie("d2", genre="Drama", rating=9.0),
    ])
    strategy = GenreBasedStrategy()

    comedy_first = _account(watched=["c1", "d1"])
    drama_first = _account(watched=["d1", "c1"])

    assert strategy.favorite_genre(comedy_first, catalog) == "Comedy"
    assert strategy.favorite_genre(drama_first, catalog) == "Drama"
    assert _ids(strategy.recommend(comedy_first, catalog, 1)) == ["c2"]
    assert _ids(strategy.recommend(drama_first, catalog, 1)) == ["d2"]


def test_genre_based_non_positive_count_is_empty(abc_catalog):
    strategy = GenreBasedStrategy()
    assert strategy.recommend(_account(watched=["A"]), abc_catalog, 0) == []
    assert strategy.recommend(_account(), abc_catalog, -3) == []


def test_top_rated_excludes_watched(abc_catalog):
    recs = TopRatedStrategy().recommend(_account(watched=["B"]), abc_catalog, 5)

    assert _ids(recs) == ["A", "C"]


def test_recent_popular_returns_whole_recent_catalog_by_rating():
    catalog = Catalog([
        _movie("x", year=2015, rating=6.5),
        _movie("y", year=2019, rating=8.5),
        _movie("z", year=2023, rating=7.5),
    ])

    recs = RecentPopularStrategy().recommend(_account(), catalog, 10)

    assert _ids(recs) == ["y", "z", "x"]


def test_recent_popular_has_no_fallback():
    catalog = Catalog([_movie("old", year=1999, rating=9.9)])

    assert RecentPopularStrategy().recommend(_account(), catalog, 5) == []


def test_recent_popular_honours_custom_cutoff():
    catalog = Catalog([_movie("a", year=2010, rating=7.0), _movie("b", year=2005, rating=9.0)])

    recs = RecentPopularStrategy(year_cutoff=2008).recommend(_account(), catalog, 5)

    assert _ids(recs) == ["a"]


def test_hybrid_score_for_unseen_genre_at_reference_year():
    catalog = Catalog([_movie("fresh", genre="Western", year=2025, rating=7.0)])

    scored = HybridStrategy(reference_year=2025).score_movies(_account(), catalog)

    assert len(scored) == 1
    assert scored[0].score == pytest.approx(48.0)


def test_hybrid_genre_affinity_and_recency_floor():
    catalog = Catalog([
        _movie("seen", genre="Drama", year=2020, rating=5.0),
        _movie("drama", genre="Drama", year=2025, rating=6.0),
        _movie("ancient", genre="Comedy", year=1900, rating=9.0),
    ])
    strategy = HybridStrategy(reference_year=2025)

    scores = {s.movie.id: s.score for s in strategy.score_movies(_account(watched=["seen"]), catalog)}

    assert "seen" not in scores
    assert scores["drama"] == pytest.approx(6.0 * 4 + 1 * 4 + 10 * 2)
    # 125 years old: recency term is floored at zero
    assert scores["ancient"] == pytest.approx(9.0 * 4)
    assert _ids(strategy.recommend(_account(watched=["seen"]), catalog, 2)) == ["drama", "ancient"]


def test_hybrid_ties_keep_catalog_order():
    catalog = Catalog([
        _movie("first", genre="Drama", year=2020, rating=7.0),
        _movie("second", genre="Drama", year=2020, rating=7.0),
    ])

    recs = HybridStrategy(reference_year=2025).recommend(_account(), catalog, 2)

    assert _ids(recs) == ["first", "second"]


def test_hybrid_empty_eligible_set():
    catalog = Catalog([_movie("only")])

    assert HybridStrategy().recommend(_account(watched=["only"]), catalog, 5) == []


@pytest.mark.parametrize("strategy", default_strategies(), ids=lambda s: s.name)
def test_every_strategy_respects_exclusions_and_count(strategy):
    catalog = Catalog([
        _movie(f"m{i}", genre=["Drama", "Comedy", "Horror"][i % 3], year=2010 + i, rating=(i * 7) % 10)
        for i in range(12)
    ])
    account = _account(watched=["m1", "m4", "ghost"], saved=["m2", "m9"])
    excluded = build_exclusion_set(account)

    recs = strategy.recommend(account, catalog, 4)

    assert len(recs) <= 4
    assert not {m.id for m in recs} & excluded
    assert len(set(_ids(recs))) == len(recs)
    assert strategy.recommend(account, catalog, 4) == recs


@pytest.mark.parametrize("strategy", [TopRatedStrategy(), RecentPopularStrategy()], ids=lambda s: s.name)
def test_rating_strategies_are_non_increasing(strategy):
    catalog = Catalog([
        _movie(f"m{i}", year=2015 + i, rating=(i * 3) % 10 + 0.5) for i in range(10)
    ])

    recs = strategy.recommend(_account(), catalog, 10)

    assert all(a.rating >= b.rating for a, b in zip(recs, recs[1:]))


def test_default_strategy_metadata():
    names = [s.name for s in default_strategies()]
    premium = [s.requires_premium for s in default_strategies()]

    assert names == ["Genre-Based", "Top Rated", "Recent & Popular", "Smart Hybrid"]
    assert premium == [False, False, True, True]
