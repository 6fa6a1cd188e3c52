from app.tracking.base import KeyValueStorage, OrderFetcher, OrderFetchError
from app.tracking.fetchers import HttpOrderFetcher, StoreOrderFetcher
from app.tracking.repository import ACTIVE_ORDER_IDS_KEY, LEGACY_ACTIVE_ORDER_ID_KEY, ActiveOrderRepository
from app.tracking.service import ActiveOrderTracker, LatestOrderStateCache
from app.tracking.storage import InMemoryStorage, JsonFileStorage

__all__ = [
    "ACTIVE_ORDER_IDS_KEY",
    "LEGACY_ACTIVE_ORDER_ID_KEY",
    "ActiveOrderRepository",
    "ActiveOrderTracker",
    "HttpOrderFetcher",
    "InMemoryStorage",
    "JsonFileStorage",
    "KeyValueStorage",
    "LatestOrderStateCache",
    "OrderFetchError",
    "OrderFetcher",
    "StoreOrderFetcher",
]
