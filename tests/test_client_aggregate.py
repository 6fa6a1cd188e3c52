import pytest

from app.core.errors import NotFound
from app.schemas.order import OrderDraft
from app.services.client_aggregate import (
    get_client,
    list_clients,
    remove_client_address,
    sync_pending_orders,
    update_client_for_order,
)
from app.services.event_bus import EventBus
from app.services.orders import create_order, update_status
from app.services.sequence import ensure_order_counter
from tests.fixtures_data import NORMALIZED_PHONE, OTHER_ADDRESS, build_session_factory, order_draft, single_item_payload


def _session():
    SessionLocal = build_session_factory()
    db = SessionLocal()
    ensure_order_counter(db, floor=1000)
    return db


def test_two_orders_accumulate_totals_and_keep_addresses_as_a_set():
    db = _session()
    bus = EventBus()
    first = create_order(db, OrderDraft(**single_item_payload(50.0)), bus=bus)
    second = create_order(db, OrderDraft(**single_item_payload(30.0)), bus=bus)

    update_client_for_order(db, first.id)
    client = update_client_for_order(db, second.id)

    assert client.phone == NORMALIZED_PHONE
    assert client.total_orders == 2
    assert client.total_spent_cents == 8000
    assert len(client.addresses) == 1
    assert client.order_ids == [first.id, second.id]
    assert client.first_order_at is not None
    assert client.last_order_at >= client.first_order_at


def test_distinct_address_is_added_once_and_name_is_overwritten():
    db = _session()
    bus = EventBus()
    first = create_order(db, OrderDraft(**single_item_payload(10.0)), bus=bus)
    second = create_order(
        db,
        OrderDraft(**single_item_payload(10.0, address=OTHER_ADDRESS, customer={"name": "Maria Souza", "phone": "11999990000"})),
        bus=bus,
    )
    third = create_order(db, OrderDraft(**single_item_payload(10.0, address=OTHER_ADDRESS)), bus=bus)

    for order in (first, second, third):
        client = update_client_for_order(db, order.id)

    assert client.total_orders == 3
    assert len(client.addresses) == 2
    assert client.name == "Maria"


def test_replaying_the_same_order_does_not_double_count():
    db = _session()
    order = create_order(db, order_draft(), bus=EventBus())

    update_client_for_order(db, order.id)
    update_client_for_order(db, order.id)
    # mesmo com a flag limpa, o id já está no conjunto do cliente
    order.client_synced = False
    db.commit()
    client = update_client_for_order(db, order.id)

    assert client.total_orders == 1
    assert client.total_spent_cents == 5000
    assert client.order_ids == [order.id]


def test_archiving_does_not_change_the_aggregate():
    db = _session()
    bus = EventBus()
    order = create_order(db, order_draft(), bus=bus)
    update_client_for_order(db, order.id)

    update_status(db, order.id, "archived", bus=bus)

    client = get_client(db, "11999990000")
    assert client.total_orders == 1
    assert client.total_spent_cents == 5000


def test_sync_pending_orders_applies_unsynced_orders_once():
    db = _session()
    bus = EventBus()
    create_order(db, order_draft(), bus=bus)
    create_order(db, order_draft(customer={"name": "Ana", "phone": "21988887777"}), bus=bus)

    assert sync_pending_orders(db) == 2
    assert sync_pending_orders(db) == 0
    assert [client.name for client in list_clients(db)] == ["Ana", "Maria"]


def test_missing_order_is_skipped():
    db = _session()
    assert update_client_for_order(db, "nao-existe") is None


def test_remove_client_address():
    db = _session()
    order = create_order(db, order_draft(), bus=EventBus())
    client = update_client_for_order(db, order.id)
    address = dict(client.addresses[0])

    client = remove_client_address(db, NORMALIZED_PHONE, address)

    assert client.addresses == []
    assert client.total_orders == 1
    with pytest.raises(NotFound):
        remove_client_address(db, "21900000000", address)
