from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import OrderServiceError
from app.deps import require_admin_token, to_http_error
from app.schemas.order import CheckoutRequest, DeliveryFeeUpdate, OrderDraft, PaymentLinkUpdate, StatusUpdate
from app.services import orders as order_service
from app.services.date_ranges import last_days_range, resolve_range
from app.services.order_events import build_order_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["orders"])


def _order_list(orders) -> List[Dict[str, Any]]:
    return [build_order_payload(order) for order in orders]


@router.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderDraft, db: Session = Depends(get_db)):
    if not payload.items:
        raise HTTPException(status_code=422, detail="Carrinho vazio")
    try:
        order = order_service.create_order_with_retry(db, payload)
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    return build_order_payload(order)


@router.get("/orders", dependencies=[Depends(require_admin_token)])
def list_orders(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
):
    wanted = (status_filter or "").strip()
    try:
        if wanted:
            return _order_list(order_service.list_orders_by_status(db, wanted))
        return _order_list(order_service.list_orders(db))
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError:
        logger.warning("order listing failed", exc_info=True)
        return []


@router.get("/orders/range", dependencies=[Depends(require_admin_token)])
def list_orders_in_range(start: Optional[str] = None, end: Optional[str] = None, db: Session = Depends(get_db)):
    default_start, default_end = last_days_range(7)
    try:
        range_start, range_end = resolve_range(start, end, default_start, default_end)
        return _order_list(order_service.list_orders_by_date_range(db, range_start, range_end))
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError:
        logger.warning("order range listing failed", exc_info=True)
        return []


@router.get("/orders/by-phone/{phone}")
def list_customer_orders(phone: str, db: Session = Depends(get_db)):
    """Consulta do próprio cliente: só pedidos ainda em aberto."""
    try:
        return _order_list(order_service.list_open_orders_for_customer(db, phone))
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError:
        logger.warning("customer order lookup failed", exc_info=True)
        return []


@router.get("/orders/new/count", dependencies=[Depends(require_admin_token)])
def count_new_orders(db: Session = Depends(get_db)):
    try:
        return {"status": "new", "count": order_service.count_orders_by_status(db, "new")}
    except SQLAlchemyError:
        logger.warning("new order count failed", exc_info=True)
        return {"status": "new", "count": 0}


@router.get("/orders/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    order = order_service.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Pedido não encontrado")
    return build_order_payload(order)


@router.patch("/orders/{order_id}/status", dependencies=[Depends(require_admin_token)])
def update_order_status(order_id: str, payload: StatusUpdate, db: Session = Depends(get_db)):
    try:
        order = order_service.update_status(db, order_id, payload.status)
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    return build_order_payload(order)


@router.patch("/orders/{order_id}/delivery-fee", dependencies=[Depends(require_admin_token)])
def update_delivery_fee(order_id: str, payload: DeliveryFeeUpdate, db: Session = Depends(get_db)):
    try:
        order = order_service.set_delivery_fee(db, order_id, order_service.to_cents(payload.delivery_fee))
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    return build_order_payload(order)


@router.patch("/orders/{order_id}/payment-link", dependencies=[Depends(require_admin_token)])
def update_payment_link(order_id: str, payload: PaymentLinkUpdate, db: Session = Depends(get_db)):
    try:
        order = order_service.set_payment_link(db, order_id, payload.payment_link)
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    return build_order_payload(order)


@router.post("/orders/{order_id}/checkout", dependencies=[Depends(require_admin_token)])
def checkout_order(order_id: str, payload: CheckoutRequest, db: Session = Depends(get_db)):
    try:
        order = order_service.checkout_order(
            db,
            order_id,
            order_service.to_cents(payload.delivery_fee),
            payload.payment_link,
        )
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    return build_order_payload(order)
