from __future__ import annotations

import json
import logging
from typing import Iterable

from app.tracking.base import KeyValueStorage

logger = logging.getLogger(__name__)

ACTIVE_ORDER_IDS_KEY = "activeOrderIds"
# formato antigo: um único id em texto puro
LEGACY_ACTIVE_ORDER_ID_KEY = "activeOrderId"


def dedupe(order_ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for order_id in order_ids:
        value = str(order_id or "").strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class ActiveOrderRepository:
    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    def load(self) -> list[str]:
        order_ids: list[str] = []
        raw = self.storage.get_item(ACTIVE_ORDER_IDS_KEY)
        if raw:
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("active order ids unreadable, ignoring stored value")
                parsed = []
            if isinstance(parsed, list):
                order_ids.extend(str(item) for item in parsed if item)
            elif isinstance(parsed, str):
                order_ids.append(parsed)

        legacy = self.storage.get_item(LEGACY_ACTIVE_ORDER_ID_KEY)
        if legacy and legacy.strip():
            order_ids.append(legacy.strip())
        return dedupe(order_ids)

    def save(self, order_ids: Iterable[str]) -> list[str]:
        cleaned = dedupe(order_ids)
        self.storage.set_item(ACTIVE_ORDER_IDS_KEY, json.dumps(cleaned))
        self.storage.remove_item(LEGACY_ACTIVE_ORDER_ID_KEY)
        return cleaned

    def add(self, order_id: str) -> list[str]:
        return self.save(self.load() + [order_id])

    def remove(self, order_id: str) -> list[str]:
        return self.save(item for item in self.load() if item != order_id)
