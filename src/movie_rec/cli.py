import argparse
import atexit
import csv
import io
import json
import logging
from datetime import date

from tqdm import tqdm

from .accounts import AccountService, AccountError
from .catalog import Catalog
from .database import (
    init_db, close_pool, upsert_movies, load_catalog, load_accounts,
    parse_movie_csv, count_rows,
)
from .engine import RecommendationEngine
from .models import Account, History, Movie, Tier, Watchlist
from .passwords import password_strength
from .config import DEFAULT_RECOMMENDATION_LIMIT, IMPORT_CHUNK_SIZE

logger = logging.getLogger(__name__)

# Register cleanup on exit
atexit.register(close_pool)

STRATEGY_ALIASES = {
    'genre': 0,
    'top-rated': 1,
    'recent': 2,
    'hybrid': 3,
}


def _parse_strategy(value: str | None) -> int | None:
    """
    Resolve a --strategy argument to a registration index.

    Accepts an index ("0".."3") or an alias from STRATEGY_ALIASES.
    Raises ValueError for anything else.
    """
    if value is None:
        return None
    cleaned = value.strip().lower()
    if cleaned.isdigit():
        return int(cleaned)
    if cleaned in STRATEGY_ALIASES:
        return STRATEGY_ALIASES[cleaned]
    raise ValueError(f"Unknown strategy '{value}' (use 0-3 or one of {', '.join(STRATEGY_ALIASES)})")


def _validate_date(value: str | None) -> str:
    if not value:
        return date.today().isoformat()
    return date.fromisoformat(value).isoformat()


def _load_engine() -> RecommendationEngine:
    init_db()
    return RecommendationEngine(load_catalog())


def cmd_init(args: argparse.Namespace) -> None:
    """Create the database schema."""
    init_db()
    logger.info("Database initialized")


def cmd_import_movies(args: argparse.Namespace) -> None:
    """Load a catalog CSV into the database."""
    init_db()
    movies, skipped = parse_movie_csv(args.file)

    chunks = [movies[i:i + IMPORT_CHUNK_SIZE] for i in range(0, len(movies), IMPORT_CHUNK_SIZE)]
    written = 0
    for chunk in tqdm(chunks, desc="Movies", disable=len(chunks) < 2):
        written += upsert_movies(chunk)

    logger.info(f"Imported {written} movies from {args.file}")
    if skipped:
        logger.warning(f"Skipped {skipped} malformed rows")


def cmd_export(args: argparse.Namespace) -> None:
    """Export movies and accounts to JSON."""
    init_db()
    catalog = load_catalog()
    accounts = load_accounts()

    data = {
        'movies': [m.to_dict() for m in catalog.all()],
        'accounts': [
            {
                'username': a.username,
                'password_hash': a.password_hash,
                'tier': a.tier.value,
                'history': [{'movie_id': i, 'watch_date': d} for i, d in a.history.items()],
                'watchlist': a.saved_ids(),
            }
            for a in accounts
        ],
    }

    with open(args.file, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)

    logger.info(f"Exported {len(data['movies'])} movies and {len(data['accounts'])} accounts to {args.file}")


def cmd_import(args: argparse.Namespace) -> None:
    """Import movies and accounts from a JSON export."""
    with open(args.file, 'r', encoding='utf-8') as f:
        data = json.load(f)

    init_db()
    service = AccountService()

    movies = [Movie(**m) for m in data.get('movies', [])]
    if movies:
        upsert_movies(movies)
        logger.info(f"Imported {len(movies)} movies")

    accounts = data.get('accounts', [])
    for entry in tqdm(accounts, desc="Accounts", disable=len(accounts) < 2):
        history = History()
        for h in entry.get('history', []):
            history.add(h['movie_id'], h.get('watch_date'))
        service.save(Account(
            username=entry['username'],
            password_hash=entry.get('password_hash', ''),
            tier=Tier.parse(entry.get('tier')),
            history=history,
            watchlist=Watchlist(entry.get('watchlist', [])),
        ))
    if accounts:
        logger.info(f"Imported {len(accounts)} accounts")

    logger.info(f"Import completed from {args.file}")


def cmd_register(args: argparse.Namespace) -> None:
    init_db()
    tier = Tier.PREMIUM if args.premium else Tier.BASIC
    try:
        account = AccountService().register(args.username, args.password, tier)
    except AccountError as e:
        logger.error(str(e))
        return
    logger.info(f"Welcome, {account.username}! Password strength: {password_strength(args.password)}")


def cmd_login(args: argparse.Namespace) -> None:
    init_db()
    try:
        account = AccountService().login(args.username, args.password)
    except AccountError as e:
        logger.error(str(e))
        return
    logger.info(f"Logged in: {account}")


def cmd_passwd(args: argparse.Namespace) -> None:
    init_db()
    try:
        AccountService().change_password(args.username, args.old, args.new)
    except AccountError as e:
        logger.error(str(e))
        return
    logger.info("Password changed")


def cmd_upgrade(args: argparse.Namespace) -> None:
    init_db()
    try:
        account = AccountService().upgrade_to_premium(args.username)
    except AccountError as e:
        logger.error(str(e))
        return
    logger.info(f"{account.username} is now {account.tier.display_name}")


def cmd_delete_user(args: argparse.Namespace) -> None:
    init_db()
    try:
        AccountService().delete(args.username)
    except AccountError as e:
        logger.error(str(e))
        return
    logger.info(f"Deleted account '{args.username}'")


def cmd_watch(args: argparse.Namespace) -> None:
    """Record a movie as watched (removes it from the watchlist)."""
    init_db()
    service = AccountService()
    try:
        account = service.get(args.username)
        watch_date = _validate_date(args.date)
    except (AccountError, ValueError) as e:
        logger.error(str(e))
        return

    if args.movie_id not in load_catalog():
        logger.warning(f"Movie '{args.movie_id}' is not in the catalog; recording anyway")

    account.mark_as_watched(args.movie_id, watch_date)
    service.save(account)
    logger.info(f"Marked {args.movie_id} as watched on {watch_date}")


def cmd_save(args: argparse.Namespace) -> None:
    """Add a movie to the watchlist."""
    init_db()
    service = AccountService()
    try:
        account = service.get(args.username)
    except AccountError as e:
        logger.error(str(e))
        return

    if args.movie_id not in load_catalog():
        logger.error(f"Movie '{args.movie_id}' is not in the catalog")
        return
    if args.movie_id in account.watchlist:
        logger.error(f"{args.movie_id} is already in the watchlist")
        return
    if not account.add_to_watchlist(args.movie_id):
        logger.error(
            f"Watchlist is full ({account.max_watchlist_size()} movies for "
            f"{account.tier.display_name} accounts)"
        )
        return

    service.save(account)
    logger.info(f"Saved {args.movie_id} ({len(account.watchlist)}/{account.max_watchlist_size()})")


def cmd_unsave(args: argparse.Namespace) -> None:
    init_db()
    service = AccountService()
    try:
        account = service.get(args.username)
    except AccountError as e:
        logger.error(str(e))
        return

    if not account.remove_from_watchlist(args.movie_id):
        logger.error(f"{args.movie_id} is not in the watchlist")
        return

    service.save(account)
    logger.info(f"Removed {args.movie_id} from the watchlist")


def _log_movie_ids(movie_ids: list[str], catalog: Catalog, dates: dict[str, str] | None = None) -> None:
    for i, movie_id in enumerate(movie_ids, 1):
        movie = catalog.by_id(movie_id)
        label = str(movie) if movie else f"[{movie_id}] (not in catalog)"
        suffix = f" - watched {dates[movie_id]}" if dates and dates.get(movie_id) else ""
        logger.info(f"{i}. {label}{suffix}")


def cmd_history(args: argparse.Namespace) -> None:
    init_db()
    try:
        account = AccountService().get(args.username)
    except AccountError as e:
        logger.error(str(e))
        return

    logger.info(f"\nWatch history for {account.username} ({len(account.history)} movies):")
    _log_movie_ids(account.history_ids(), load_catalog(), dict(account.history.items()))


def cmd_watchlist(args: argparse.Namespace) -> None:
    init_db()
    try:
        account = AccountService().get(args.username)
    except AccountError as e:
        logger.error(str(e))
        return

    logger.info(
        f"\nWatchlist for {account.username} "
        f"({len(account.watchlist)}/{account.max_watchlist_size()}):"
    )
    _log_movie_ids(account.saved_ids(), load_catalog())


def cmd_strategies(args: argparse.Namespace) -> None:
    """List strategies, filtered by tier when a username is given."""
    engine = _load_engine()
    strategies = engine.get_available_strategies()
    allowed = strategies

    if args.username:
        try:
            account = AccountService().get(args.username)
        except AccountError as e:
            logger.error(str(e))
            return
        allowed = engine.get_available_strategies_for_account(account)

    for index, strategy in enumerate(strategies):
        if strategy not in allowed:
            marker = " [Premium only]"
        else:
            marker = " [Premium]" if strategy.requires_premium else ""
        logger.info(f"{index}. {strategy.name}{marker} - {strategy.description}")


def _csv_line(fields: list) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="").writerow(fields)
    return buf.getvalue()


def _output_recommendations(recs: list[Movie], args: argparse.Namespace, username: str, strategy_name: str) -> None:
    """Format and log recommendations in the requested format."""
    output_format = getattr(args, 'format', 'text')

    if output_format == 'json':
        logger.info(json.dumps([m.to_dict() for m in recs], indent=2))

    elif output_format == 'csv':
        logger.info(_csv_line(["id", "title", "genre", "year", "rating"]))
        for m in recs:
            logger.info(_csv_line([m.id, m.title, m.genre, m.year, f"{m.rating:.1f}"]))

    else:
        logger.info(f"\nTop {len(recs)} recommendations for {username} ({strategy_name}):")
        if not recs:
            logger.info("  Nothing to recommend right now.")
        for i, m in enumerate(recs, 1):
            logger.info(f"{i}. {m}")


def cmd_recommend(args: argparse.Namespace) -> None:
    """Generate recommendations."""
    engine = _load_engine()
    try:
        account = AccountService().get(args.username)
        strategy_index = _parse_strategy(args.strategy)
    except (AccountError, ValueError) as e:
        logger.error(str(e))
        return

    strategies = engine.get_available_strategies()
    if strategy_index is not None:
        if not engine.set_strategy(strategy_index):
            logger.error(f"No strategy at index {strategy_index} (0-{len(strategies) - 1})")
            return

    strategy = engine.current_strategy
    if strategy not in engine.get_available_strategies_for_account(account):
        logger.error(f"'{strategy.name}' requires a Premium account. Run: movie-rec upgrade {account.username}")
        return

    if args.limit > account.max_recommendations():
        logger.info(
            f"{account.tier.display_name} accounts get up to "
            f"{account.max_recommendations()} recommendations"
        )

    recs = engine.get_recommendations(account, args.limit)
    _output_recommendations(recs, args, account.username, strategy.name)


def cmd_search(args: argparse.Namespace) -> None:
    catalog = _load_engine().catalog
    matches = catalog.search_by_title(args.keyword)
    if args.genre:
        matches = [m for m in matches if m.genre.casefold() == args.genre.casefold()]
    if args.min_year is not None or args.max_year is not None:
        low = args.min_year if args.min_year is not None else 0
        high = args.max_year if args.max_year is not None else 9999
        in_range = {m.id for m in catalog.by_year_range(low, high)}
        matches = [m for m in matches if m.id in in_range]
    if args.min_rating is not None:
        rated = {m.id for m in catalog.by_min_rating(args.min_rating)}
        matches = [m for m in matches if m.id in rated]

    logger.info(f"\n{len(matches)} movies match '{args.keyword}':")
    for m in matches[:args.limit]:
        logger.info(f"  {m.detailed()}")


def cmd_genres(args: argparse.Namespace) -> None:
    catalog = _load_engine().catalog
    for genre in catalog.genres():
        logger.info(f"  {genre}: {len(catalog.by_genre(genre))} movies")


def cmd_stats(args: argparse.Namespace) -> None:
    """Show database statistics."""
    init_db()
    counts = count_rows()
    logger.info("\nDatabase Statistics:")
    logger.info(f"  Movies: {counts['movies']}")
    logger.info(f"  Accounts: {counts['accounts']}")
    logger.info(f"  Watched entries: {counts['history']}")
    logger.info(f"  Watchlist entries: {counts['watchlist']}")

    if getattr(args, 'verbose', False):
        premium = sum(1 for a in load_accounts() if a.tier is Tier.PREMIUM)
        logger.info(f"  Premium accounts: {premium}")


def main():
    parser = argparse.ArgumentParser(description="Movie Recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create the database schema")
    init_parser.set_defaults(func=cmd_init)

    import_movies_parser = subparsers.add_parser("import-movies", help="Load movies from a CSV file")
    import_movies_parser.add_argument("file", help="CSV with id,title,genre,year,rating[,movie_type,duration]")
    import_movies_parser.set_defaults(func=cmd_import_movies)

    export_parser = subparsers.add_parser("export", help="Export database to JSON")
    export_parser.add_argument("file", help="Output JSON file path")
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser("import", help="Import database from JSON")
    import_parser.add_argument("file", help="Input JSON file path")
    import_parser.set_defaults(func=cmd_import)

    # Account commands
    register_parser = subparsers.add_parser("register", help="Create an account")
    register_parser.add_argument("username")
    register_parser.add_argument("--password", required=True)
    register_parser.add_argument("--premium", action="store_true", help="Create a Premium account")
    register_parser.set_defaults(func=cmd_register)

    login_parser = subparsers.add_parser("login", help="Check credentials")
    login_parser.add_argument("username")
    login_parser.add_argument("--password", required=True)
    login_parser.set_defaults(func=cmd_login)

    passwd_parser = subparsers.add_parser("passwd", help="Change password")
    passwd_parser.add_argument("username")
    passwd_parser.add_argument("--old", required=True, help="Current password")
    passwd_parser.add_argument("--new", required=True, help="New password")
    passwd_parser.set_defaults(func=cmd_passwd)

    upgrade_parser = subparsers.add_parser("upgrade", help="Upgrade an account to Premium")
    upgrade_parser.add_argument("username")
    upgrade_parser.set_defaults(func=cmd_upgrade)

    delete_parser = subparsers.add_parser("delete-user", help="Delete an account")
    delete_parser.add_argument("username")
    delete_parser.set_defaults(func=cmd_delete_user)

    # History and watchlist
    watch_parser = subparsers.add_parser("watch", help="Mark a movie as watched")
    watch_parser.add_argument("username")
    watch_parser.add_argument("movie_id")
    watch_parser.add_argument("--date", help="Watch date (YYYY-MM-DD, default today)")
    watch_parser.set_defaults(func=cmd_watch)

    save_parser = subparsers.add_parser("save", help="Add a movie to the watchlist")
    save_parser.add_argument("username")
    save_parser.add_argument("movie_id")
    save_parser.set_defaults(func=cmd_save)

    unsave_parser = subparsers.add_parser("unsave", help="Remove a movie from the watchlist")
    unsave_parser.add_argument("username")
    unsave_parser.add_argument("movie_id")
    unsave_parser.set_defaults(func=cmd_unsave)

    history_parser = subparsers.add_parser("history", help="Show watch history")
    history_parser.add_argument("username")
    history_parser.set_defaults(func=cmd_history)

    watchlist_parser = subparsers.add_parser("watchlist", help="Show watchlist")
    watchlist_parser.add_argument("username")
    watchlist_parser.set_defaults(func=cmd_watchlist)

    # Recommendations
    strategies_parser = subparsers.add_parser("strategies", help="List recommendation strategies")
    strategies_parser.add_argument("username", nargs="?", help="Only mark strategies this account can use")
    strategies_parser.set_defaults(func=cmd_strategies)

    rec_parser = subparsers.add_parser("recommend", help="Generate recommendations")
    rec_parser.add_argument("username")
    rec_parser.add_argument("--strategy", help="Strategy index (0-3) or genre/top-rated/recent/hybrid")
    rec_parser.add_argument("--limit", type=int, default=DEFAULT_RECOMMENDATION_LIMIT,
                            help="Number of recommendations (capped by account tier)")
    rec_parser.add_argument("--format", choices=['text', 'json', 'csv'], default='text',
                            help="Output format")
    rec_parser.set_defaults(func=cmd_recommend)

    # Catalog browsing
    search_parser = subparsers.add_parser("search", help="Search movies by title")
    search_parser.add_argument("keyword")
    search_parser.add_argument("--genre", help="Only this genre")
    search_parser.add_argument("--min-year", type=int, help="Minimum release year")
    search_parser.add_argument("--max-year", type=int, help="Maximum release year")
    search_parser.add_argument("--min-rating", type=float, help="Minimum rating")
    search_parser.add_argument("--limit", type=int, default=20, help="Max results to show")
    search_parser.set_defaults(func=cmd_search)

    genres_parser = subparsers.add_parser("genres", help="List genres in the catalog")
    genres_parser.set_defaults(func=cmd_genres)

    stats_parser = subparsers.add_parser("stats", help="Show database statistics")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()
