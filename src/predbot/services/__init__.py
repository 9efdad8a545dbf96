"""Market reconciliation, retry and cache services."""

from predbot.services.cache import CachePath, CacheStatus, MarketCache
from predbot.services.market_service import EnhanceSummary, MarketService
from predbot.services.reconciler import EnhancementCandidate, MarketReconciler
from predbot.services.retry import FetchResult, FetchStatus, RetryCoordinator

__all__ = [
    "CachePath",
    "CacheStatus",
    "EnhanceSummary",
    "EnhancementCandidate",
    "FetchResult",
    "FetchStatus",
    "MarketCache",
    "MarketReconciler",
    "MarketService",
    "RetryCoordinator",
]
