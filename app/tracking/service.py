from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from threading import Event, Lock, RLock, Thread
from typing import Any, Callable

from app.core.config import ACTIVE_ORDER_POLL_SECONDS
from app.tracking.base import OrderFetcher
from app.tracking.repository import ActiveOrderRepository

logger = logging.getLogger(__name__)

ARCHIVED_STATUS = "archived"
MAX_FETCH_WORKERS = 4

LiveSubscriber = Callable[[str, Callable[[dict[str, Any]], None]], Callable[[], None]]


def _updated_at(snapshot: dict[str, Any]) -> datetime | None:
    raw = snapshot.get("updated_at")
    if not raw:
        return None
    if isinstance(raw, datetime):
        value = raw
    else:
        try:
            value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError:
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class LatestOrderStateCache:
    """Guarda por pedido o estado com maior updated_at já visto.

    Resposta do poll e push ao vivo podem chegar fora de ordem; um estado mais
    antigo nunca substitui um mais novo.
    """

    def __init__(self) -> None:
        self._states: dict[str, dict[str, Any]] = {}
        self._lock = Lock()

    def offer(self, snapshot: dict[str, Any]) -> bool:
        order_id = snapshot.get("id")
        if not order_id:
            return False
        incoming = _updated_at(snapshot)
        with self._lock:
            current = self._states.get(order_id)
            if current is not None:
                known = _updated_at(current)
                if incoming is None or (known is not None and incoming < known):
                    return False
            self._states[order_id] = dict(snapshot)
            return True

    def get(self, order_id: str) -> dict[str, Any] | None:
        with self._lock:
            state = self._states.get(order_id)
            return dict(state) if state is not None else None

    def forget(self, order_id: str) -> None:
        with self._lock:
            self._states.pop(order_id, None)


class ActiveOrderTracker:
    def __init__(
        self,
        repository: ActiveOrderRepository,
        fetcher: OrderFetcher,
        *,
        cache: LatestOrderStateCache | None = None,
        poll_seconds: float = ACTIVE_ORDER_POLL_SECONDS,
        max_workers: int = MAX_FETCH_WORKERS,
        live_subscriber: LiveSubscriber | None = None,
    ) -> None:
        self.repository = repository
        self.fetcher = fetcher
        self.cache = cache or LatestOrderStateCache()
        self.poll_seconds = poll_seconds
        self.max_workers = max(1, max_workers)
        self.live_subscriber = live_subscriber
        self._lock = RLock()
        self._displayed: list[dict[str, Any]] = []
        self._live: dict[str, Callable[[], None]] = {}

    @property
    def displayed(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(order) for order in self._displayed]

    def track(self, order_id: str) -> list[str]:
        with self._lock:
            tracked = self.repository.add(order_id)
            self._sync_live(tracked)
            return tracked

    def _fetch_all(self, order_ids: list[str]) -> dict[str, tuple[bool, dict[str, Any] | None]]:
        results: dict[str, tuple[bool, dict[str, Any] | None]] = {}
        if not order_ids:
            return results
        workers = min(self.max_workers, len(order_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="order-fetch") as pool:
            futures = {order_id: pool.submit(self.fetcher.fetch, order_id) for order_id in order_ids}
            for order_id, future in futures.items():
                try:
                    results[order_id] = (True, future.result())
                except Exception:
                    # falha transitória: mantém rastreado e usa o último estado conhecido
                    logger.warning("active order fetch failed order_id=%s", order_id, exc_info=True)
                    results[order_id] = (False, None)
        return results

    def _rebuild_display(self, tracked: list[str]) -> None:
        orders = [state for state in (self.cache.get(order_id) for order_id in tracked) if state is not None]
        orders.sort(key=lambda order: int(order.get("order_number") or 0), reverse=True)
        self._displayed = orders

    def _sync_live(self, tracked: list[str]) -> None:
        if self.live_subscriber is None:
            return
        for order_id in list(self._live):
            if order_id not in tracked:
                self._live.pop(order_id)()
        for order_id in tracked:
            if order_id not in self._live:
                self._live[order_id] = self.live_subscriber(order_id, self.on_push)

    def reconcile(self) -> list[dict[str, Any]]:
        """Consulta todos os ids rastreados e poda só o que foi confirmado ausente ou arquivado."""
        tracked = self.repository.load()
        results = self._fetch_all(tracked)

        with self._lock:
            keep: list[str] = []
            for order_id in tracked:
                ok, snapshot = results.get(order_id, (False, None))
                if not ok:
                    keep.append(order_id)
                    continue
                if snapshot is None:
                    logger.info("active order gone, untracking order_id=%s", order_id)
                    self.cache.forget(order_id)
                    continue
                self.cache.offer(snapshot)
                latest = self.cache.get(order_id) or snapshot
                if latest.get("status") == ARCHIVED_STATUS:
                    logger.info("active order archived, untracking order_id=%s", order_id)
                    self.cache.forget(order_id)
                    continue
                keep.append(order_id)

            # só reescreve o que mudou; ids rastreados em outra aba no meio tempo são preservados
            pruned = set(tracked) - set(keep)
            current = self.repository.load()
            kept = self.repository.save(order_id for order_id in current if order_id not in pruned)
            self._sync_live(kept)
            self._rebuild_display(kept)
            return self.displayed

    def on_push(self, snapshot: dict[str, Any]) -> bool:
        """Aplica um push ao vivo; ignora estados mais antigos que o cache."""
        order_id = snapshot.get("id")
        with self._lock:
            tracked = self.repository.load()
            if not order_id or order_id not in tracked:
                return False
            if not self.cache.offer(snapshot):
                logger.debug("stale push ignored order_id=%s", order_id)
                return False
            if snapshot.get("status") == ARCHIVED_STATUS:
                self.cache.forget(order_id)
                tracked = self.repository.remove(order_id)
                self._sync_live(tracked)
            self._rebuild_display(tracked)
            return True

    def run(self, stop_event: Event | None = None) -> None:
        """Reconcilia na partida e depois a cada poll_seconds até o stop_event."""
        stop = stop_event or Event()
        while True:
            try:
                self.reconcile()
            except Exception:
                logger.exception("active order reconcile failed")
            if stop.wait(self.poll_seconds):
                break

    def start(self) -> tuple[Thread, Event]:
        stop = Event()
        thread = Thread(target=self.run, args=(stop,), name="active-order-tracker", daemon=True)
        thread.start()
        return thread, stop

    def close(self) -> None:
        with self._lock:
            for unsubscribe in self._live.values():
                unsubscribe()
            self._live.clear()
