from __future__ import annotations

import logging
from weakref import WeakSet

from sqlalchemy.orm import Session

from app.core import database
from app.services.client_aggregate import update_client_for_order
from app.services.event_bus import EventBus, event_bus
from app.services.order_events import ORDER_CREATED, ORDER_STATUS_CHANGED

logger = logging.getLogger(__name__)


def _with_session(handler):
    def wrapper(payload: dict) -> None:
        db: Session = database.SessionLocal()
        try:
            handler(db, payload)
        finally:
            db.close()

    wrapper.__name__ = handler.__name__
    return wrapper


@_with_session
def handle_order_created(db: Session, payload: dict) -> None:
    update_client_for_order(db, payload["id"])


def handle_order_status_changed(payload: dict) -> None:
    # agregado do cliente é bruto: arquivar/cancelar não estorna totais
    logger.info(
        "order %s status %s -> %s",
        payload.get("order_number"),
        payload.get("previous_status"),
        payload.get("status"),
        extra={"order_id": payload.get("id")},
    )


_registered_buses: "WeakSet[EventBus]" = WeakSet()


def register_event_handlers(bus: EventBus = event_bus) -> None:
    if bus in _registered_buses:
        return
    bus.subscribe(ORDER_CREATED, handle_order_created)
    bus.subscribe(ORDER_STATUS_CHANGED, handle_order_status_changed)
    _registered_buses.add(bus)
