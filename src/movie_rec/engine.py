import logging
import threading

from .catalog import Catalog
from .models import Account, Movie, Tier
from .scoring import top_rated
from .strategies import RecommendationStrategy, default_strategies

logger = logging.getLogger(__name__)


class RecommendationEngine:
    """
    Dispatches recommendation requests to the active (or an explicitly chosen)
    strategy and caps the result size by the account's tier.

    The active strategy is the only mutable state. It is guarded by a lock;
    concurrent callers that want isolation should pass ``strategy_index`` per
    call instead of switching the active strategy.
    """

    def __init__(self, catalog: Catalog, strategies: list[RecommendationStrategy] | None = None):
        self.catalog = catalog
        self._strategies = list(strategies) if strategies is not None else default_strategies()
        if not self._strategies:
            raise ValueError("RecommendationEngine needs at least one strategy")
        self._lock = threading.Lock()
        self._current = self._strategies[0]

    @property
    def current_strategy(self) -> RecommendationStrategy:
        with self._lock:
            return self._current

    def get_available_strategies(self) -> list[RecommendationStrategy]:
        return list(self._strategies)

    def get_available_strategies_for_account(self, account: Account) -> list[RecommendationStrategy]:
        return [
            s for s in self._strategies
            if not s.requires_premium or account.tier is Tier.PREMIUM
        ]

    def _strategy_at(self, index) -> RecommendationStrategy | None:
        # bool is an int subclass but never a valid position
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if 0 <= index < len(self._strategies):
            return self._strategies[index]
        return None

    def set_strategy(self, selection: int | RecommendationStrategy) -> bool:
        """
        Activate a strategy by registration index or by instance.

        An out-of-range index returns False and leaves the active strategy
        unchanged. Instances are accepted without checking registration.
        """
        if isinstance(selection, RecommendationStrategy):
            strategy = selection
        else:
            strategy = self._strategy_at(selection)
            if strategy is None:
                logger.warning(f"Ignoring invalid strategy index {selection!r}")
                return False

        with self._lock:
            self._current = strategy
        logger.debug(f"Active strategy: {strategy.name}")
        return True

    def get_recommendations(
        self,
        account: Account,
        requested_count: int,
        strategy_index: int | None = None,
    ) -> list[Movie]:
        """
        Recommend up to ``min(requested_count, account.max_recommendations())`` movies.

        With ``strategy_index`` the strategy at that position is used; an
        invalid index falls back to the active strategy.
        """
        strategy = None
        if strategy_index is not None:
            strategy = self._strategy_at(strategy_index)
            if strategy is None:
                logger.debug(f"Strategy index {strategy_index!r} invalid, using active strategy")
        if strategy is None:
            strategy = self.current_strategy

        effective_count = min(requested_count, account.max_recommendations())
        logger.debug(
            f"Recommending {effective_count} for {account.username} with {strategy.name}"
        )
        return strategy.recommend(account, self.catalog, effective_count)

    def get_top_rated_movies(self, count: int, account: Account) -> list[Movie]:
        return top_rated(account, self.catalog, count)
