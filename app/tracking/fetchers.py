from __future__ import annotations

import logging
from typing import Any, Callable

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import ORDER_API_BASE_URL, ORDER_API_TIMEOUT_SECONDS
from app.services.order_events import build_order_payload
from app.services.orders import get_order
from app.tracking.base import OrderFetcher, OrderFetchError

logger = logging.getLogger(__name__)


class HttpOrderFetcher(OrderFetcher):
    """Busca pedidos pela API pública (GET /api/orders/{id}).

    Aceita um httpx.Client já configurado (ou o TestClient do FastAPI).
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        base_url: str = ORDER_API_BASE_URL,
        timeout: float = ORDER_API_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def fetch(self, order_id: str) -> dict[str, Any] | None:
        try:
            response = self.client.get(f"/api/orders/{order_id}")
        except httpx.HTTPError as exc:
            raise OrderFetchError(f"order fetch failed: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise OrderFetchError(f"order fetch failed status={response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise OrderFetchError("order fetch returned invalid json") from exc
        if not isinstance(payload, dict) or not payload.get("id"):
            raise OrderFetchError("order fetch returned unexpected body")
        return payload

    def close(self) -> None:
        if self._owns_client:
            self.client.close()


class StoreOrderFetcher(OrderFetcher):
    """Lê direto do banco; usado no mesmo processo da API."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def fetch(self, order_id: str) -> dict[str, Any] | None:
        db = self.session_factory()
        try:
            order = get_order(db, order_id)
            return build_order_payload(order) if order is not None else None
        except SQLAlchemyError as exc:
            raise OrderFetchError(f"order lookup failed: {exc}") from exc
        finally:
            db.close()
