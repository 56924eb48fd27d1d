import logging

import pytest

from movie_rec.models import Account, Movie, Tier


def _movies():
    return [
        Movie(id="m1", title="First", genre="Drama", year=2001, rating=7.5),
        Movie(id="m2", title="Second", genre="Comedy", year=2017, rating=6.0, movie_type="short", duration=15),
        Movie(id="m3", title="Third", genre="Drama", year=2020, rating=8.8),
    ]


def test_init_db_creates_expected_tables(fresh_db):
    db = fresh_db
    db.init_db()

    with db.get_db(read_only=True) as conn:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }

    assert {"movies", "accounts", "history", "watchlist"}.issubset(tables)


def test_nested_transactions_commit_once(fresh_db):
    db = fresh_db
    db.init_db()

    with db.get_db() as conn:
        conn.execute(
            "INSERT INTO movies (id, title, genre, year, rating) VALUES (?, ?, ?, ?, ?)",
            ("m1", "First", "Drama", 2001, 7.5),
        )
        with db.get_db() as inner:
            inner.execute(
                "INSERT INTO accounts (username, password_hash, tier) VALUES (?, ?, ?)",
                ("alice", "x", "basic"),
            )

    assert db.count_rows()["accounts"] == 1
    assert db.count_rows()["movies"] == 1


def test_failed_transaction_rolls_back(fresh_db):
    db = fresh_db
    db.init_db()

    with pytest.raises(RuntimeError):
        with db.get_db() as conn:
            conn.execute(
                "INSERT INTO accounts (username, password_hash, tier) VALUES (?, ?, ?)",
                ("bob", "x", "basic"),
            )
            raise RuntimeError("boom")

    assert db.count_rows()["accounts"] == 0


def test_upsert_and_load_catalog_keeps_order(fresh_db):
    db = fresh_db
    db.init_db()

    assert db.upsert_movies(_movies()) == 3
    db.upsert_movies([Movie(id="m1", title="First (Remastered)", genre="Drama", year=2001, rating=7.9)])

    catalog = db.load_catalog()

    assert [m.id for m in catalog.all()] == ["m1", "m2", "m3"]
    assert catalog.by_id("m1").title == "First (Remastered)"
    assert catalog.by_id("m2").is_short_film
    assert catalog.by_id("m2").duration == 15


def test_account_round_trip_preserves_order(fresh_db):
    db = fresh_db
    db.init_db()

    account = Account(username="carol", password_hash="h", tier=Tier.PREMIUM)
    account.mark_as_watched("m3", "2024-02-01")
    account.mark_as_watched("m1", "2024-01-01")
    account.add_to_watchlist("m2")
    account.add_to_watchlist("m9")
    db.save_account(account)

    loaded = db.load_account("carol")

    assert loaded.tier is Tier.PREMIUM
    assert loaded.history_ids() == ["m3", "m1"]
    assert loaded.history.watch_date("m1") == "2024-01-01"
    assert loaded.saved_ids() == ["m2", "m9"]

    loaded.remove_from_watchlist("m2")
    db.save_account(loaded)
    assert db.load_account("carol").saved_ids() == ["m9"]


def test_missing_account_and_delete(fresh_db):
    db = fresh_db
    db.init_db()
    db.save_account(Account(username="dave", password_hash="h"))

    assert db.load_account("nobody") is None
    assert db.account_exists("dave")
    assert db.delete_account("dave") is True
    assert db.delete_account("dave") is False
    assert db.load_accounts() == []


def test_parse_movie_csv_skips_bad_rows(tmp_path, fresh_db, caplog):
    caplog.set_level(logging.WARNING)
    csv_path = tmp_path / "movies.csv"
    csv_path.write_text(
        "id,title,genre,year,rating,movie_type,duration\n"
        "m1,Plain,Drama,2001,7.5\n"
        'm2,"Comma, Title",Comedy,2017,6.0,short,\n'
        "m3,Broken,Drama,not-a-year,8.0\n"
        "m4,Too Short\n"
        "\n"
        "m5,Long,Epic,2010,9.1,feature,200\n",
        encoding="utf-8",
    )

    movies, skipped = fresh_db.parse_movie_csv(csv_path)

    assert [m.id for m in movies] == ["m1", "m2", "m5"]
    assert movies[1].title == "Comma, Title"
    assert movies[1].duration == 20
    assert movies[2].duration == 200
    assert skipped == 2
    assert "Skipping line 4" in caplog.text
