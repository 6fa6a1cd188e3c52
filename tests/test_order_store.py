from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import IllegalTransition, NotFound, ValidationFailure
from app.services.event_bus import EventBus
from app.services.order_events import (
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    ORDER_UPDATED,
    subscribe_to_new_orders,
    subscribe_to_order,
)
from app.services.orders import (
    checkout_order,
    count_orders_by_status,
    create_order,
    get_order,
    list_open_orders_for_customer,
    list_orders_by_customer,
    list_orders_by_date_range,
    list_orders_by_status,
    require_order,
    set_delivery_fee,
    set_payment_link,
    update_status,
)
from app.services.sequence import current_order_number, ensure_order_counter
from tests.fixtures_data import NORMALIZED_PHONE, build_session_factory, order_draft


def _session():
    SessionLocal = build_session_factory()
    db = SessionLocal()
    ensure_order_counter(db, floor=1000)
    return db


def test_create_order_snapshots_cart_and_starts_as_new():
    db = _session()
    bus = EventBus()
    created = []
    bus.subscribe(ORDER_CREATED, created.append)
    last_number = current_order_number(db)

    order = create_order(db, order_draft(), bus=bus)

    assert order.status == "new"
    assert order.total_cents == 5000
    assert order.order_number == last_number + 1
    assert order.customer_phone == NORMALIZED_PHONE
    assert order.items[0]["unit_price_cents"] == 2500
    assert order.items[0]["quantity"] == 2
    assert order.delivery_address["postal_code"] == "01310100"
    assert order.created_at is not None and order.updated_at is not None
    assert order.client_synced is False
    assert [payload["id"] for payload in created] == [order.id]


def test_create_order_rejects_incomplete_draft_before_writing():
    db = _session()
    draft = order_draft(delivery_date="amanhã")

    with pytest.raises(ValidationFailure) as exc_info:
        create_order(db, draft, bus=EventBus())

    assert exc_info.value.field == "delivery_date"
    assert current_order_number(db) == 1000


def test_repeated_idempotency_key_returns_the_same_order():
    db = _session()
    bus = EventBus()

    first = create_order(db, order_draft(idempotency_key="checkout-abc"), bus=bus)
    second = create_order(db, order_draft(idempotency_key="checkout-abc"), bus=bus)

    assert first.id == second.id
    assert current_order_number(db) == 1001


def test_require_order_raises_not_found():
    db = _session()

    assert get_order(db, "nao-existe") is None
    with pytest.raises(NotFound):
        require_order(db, "nao-existe")
    with pytest.raises(NotFound):
        update_status(db, "nao-existe", "archived", bus=EventBus())


def test_status_walks_the_happy_path_and_emits_changes():
    db = _session()
    bus = EventBus()
    order = create_order(db, order_draft(), bus=bus)
    changes = []
    bus.subscribe(ORDER_STATUS_CHANGED, changes.append)

    for status in ("pending_payment", "confirmed", "shipped", "completed", "archived"):
        order = update_status(db, order.id, status, bus=bus)

    assert order.status == "archived"
    assert [(c["previous_status"], c["status"]) for c in changes] == [
        ("new", "pending_payment"),
        ("pending_payment", "confirmed"),
        ("confirmed", "shipped"),
        ("shipped", "completed"),
        ("completed", "archived"),
    ]


def test_illegal_transition_leaves_order_untouched():
    db = _session()
    bus = EventBus()
    order = create_order(db, order_draft(), bus=bus)
    for status in ("pending_payment", "confirmed", "completed"):
        update_status(db, order.id, status, bus=bus)
    before = require_order(db, order.id).updated_at

    with pytest.raises(IllegalTransition) as exc_info:
        update_status(db, order.id, "confirmed", bus=bus)

    db.expire_all()
    reloaded = require_order(db, order.id)
    assert exc_info.value.current == "completed"
    assert reloaded.status == "completed"
    assert reloaded.updated_at == before


def test_archived_is_terminal_and_same_status_is_rejected():
    db = _session()
    bus = EventBus()
    order = create_order(db, order_draft(), bus=bus)

    with pytest.raises(IllegalTransition):
        update_status(db, order.id, "new", bus=bus)

    update_status(db, order.id, "archived", bus=bus)
    with pytest.raises(IllegalTransition):
        update_status(db, order.id, "new", bus=bus)


def test_fee_and_payment_link_are_independent_patches():
    db = _session()
    bus = EventBus()
    order = create_order(db, order_draft(), bus=bus)
    updates = []
    bus.subscribe(ORDER_UPDATED, updates.append)

    set_delivery_fee(db, order.id, 800, bus=bus)
    order = set_payment_link(db, order.id, "  https://pay.example/abc  ", bus=bus)

    assert order.delivery_fee_cents == 800
    assert order.payment_link == "https://pay.example/abc"
    assert order.status == "new"
    assert len(updates) == 2

    with pytest.raises(ValidationFailure):
        set_delivery_fee(db, order.id, -1, bus=bus)


def test_checkout_sets_fee_link_and_moves_to_pending_payment():
    db = _session()
    bus = EventBus()
    order = create_order(db, order_draft(), bus=bus)

    order = checkout_order(db, order.id, 1200, "https://pay.example/xyz", bus=bus)

    assert order.status == "pending_payment"
    assert order.delivery_fee_cents == 1200
    assert order.payment_link == "https://pay.example/xyz"
    with pytest.raises(IllegalTransition):
        checkout_order(db, order.id, 1200, None, bus=bus)


def test_listing_queries():
    db = _session()
    bus = EventBus()
    first = create_order(db, order_draft(), bus=bus)
    second = create_order(db, order_draft(), bus=bus)
    other = create_order(db, order_draft(customer={"name": "Ana", "phone": "21988887777"}), bus=bus)
    update_status(db, first.id, "pending_payment", bus=bus)
    update_status(db, first.id, "confirmed", bus=bus)
    update_status(db, first.id, "completed", bus=bus)

    assert [o.id for o in list_orders_by_status(db, "new")] == [other.id, second.id]
    assert count_orders_by_status(db, "new") == 2
    assert [o.id for o in list_orders_by_customer(db, "11 99999-0000")] == [second.id, first.id]
    assert [o.id for o in list_open_orders_for_customer(db, "11999990000")] == [second.id]

    now = datetime.now(timezone.utc)
    in_range = list_orders_by_date_range(db, now - timedelta(hours=1), now + timedelta(hours=1))
    assert [o.id for o in in_range] == [first.id, second.id, other.id]
    assert list_orders_by_date_range(db, now + timedelta(hours=1), now + timedelta(hours=2)) == []

    with pytest.raises(ValidationFailure):
        list_orders_by_status(db, "cancelado")
    with pytest.raises(ValidationFailure):
        list_orders_by_date_range(db, now, now - timedelta(days=1))


def test_subscribe_to_order_only_delivers_that_order_until_unsubscribed():
    db = _session()
    bus = EventBus()
    watched = create_order(db, order_draft(), bus=bus)
    ignored = create_order(db, order_draft(), bus=bus)
    received = []

    unsubscribe = subscribe_to_order(watched.id, received.append, bus=bus)
    update_status(db, ignored.id, "archived", bus=bus)
    set_payment_link(db, watched.id, "https://pay.example/1", bus=bus)
    update_status(db, watched.id, "pending_payment", bus=bus)
    unsubscribe()
    update_status(db, watched.id, "archived", bus=bus)

    assert [payload["status"] for payload in received] == ["new", "pending_payment"]
    assert all(payload["id"] == watched.id for payload in received)


def test_new_order_feed_reports_count_and_arrivals_until_unsubscribed(tmp_path):
    SessionLocal = build_session_factory(tmp_path / "feed.db")
    db = SessionLocal()
    ensure_order_counter(db, floor=1000)
    bus = EventBus()
    received = []

    unsubscribe = subscribe_to_new_orders(
        lambda count, added: received.append((count, [order["id"] for order in added])),
        bus=bus,
        session_factory=SessionLocal,
    )
    first = create_order(db, order_draft(), bus=bus)
    second = create_order(db, order_draft(), bus=bus)
    update_status(db, first.id, "pending_payment", bus=bus)
    set_payment_link(db, second.id, "https://pay.example/2", bus=bus)
    update_status(db, first.id, "confirmed", bus=bus)
    unsubscribe()
    update_status(db, second.id, "archived", bus=bus)
    db.close()

    assert received == [(1, [first.id]), (2, [second.id]), (1, [])]
