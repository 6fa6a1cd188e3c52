import json
import runpy
from datetime import datetime, timedelta, timezone
from pathlib import Path

from app.services.event_bus import EventBus
from app.services.order_events import subscribe_to_order
from app.services.orders import create_order, update_status
from app.services.sequence import ensure_order_counter
from app.tracking import (
    ACTIVE_ORDER_IDS_KEY,
    LEGACY_ACTIVE_ORDER_ID_KEY,
    ActiveOrderRepository,
    ActiveOrderTracker,
    InMemoryStorage,
    JsonFileStorage,
    LatestOrderStateCache,
    OrderFetcher,
    OrderFetchError,
    StoreOrderFetcher,
)
from tests.fixtures_data import build_session_factory, order_draft

BASE_TIME = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _snapshot(order_id: str, status: str = "new", *, number: int = 1001, minutes: int = 0) -> dict:
    return {
        "id": order_id,
        "order_number": number,
        "status": status,
        "updated_at": (BASE_TIME + timedelta(minutes=minutes)).isoformat(),
    }


class FakeFetcher(OrderFetcher):
    def __init__(self, orders: dict | None = None, failing: set | None = None) -> None:
        self.orders = dict(orders or {})
        self.failing = set(failing or ())
        self.calls = []

    def fetch(self, order_id):
        self.calls.append(order_id)
        if order_id in self.failing:
            raise OrderFetchError("timeout")
        return self.orders.get(order_id)


def _tracker(storage, fetcher, **kwargs) -> ActiveOrderTracker:
    return ActiveOrderTracker(ActiveOrderRepository(storage), fetcher, poll_seconds=0.01, **kwargs)


def test_repository_dedupes_and_merges_legacy_id():
    storage = InMemoryStorage(
        {
            ACTIVE_ORDER_IDS_KEY: json.dumps(["a", "b", "a"]),
            LEGACY_ACTIVE_ORDER_ID_KEY: "b",
        }
    )
    repository = ActiveOrderRepository(storage)

    assert repository.load() == ["a", "b"]
    repository.save(repository.load())

    assert storage.get_item(ACTIVE_ORDER_IDS_KEY) == json.dumps(["a", "b"])
    assert storage.get_item(LEGACY_ACTIVE_ORDER_ID_KEY) is None
    assert repository.add("c") == ["a", "b", "c"]
    assert repository.add("a") == ["a", "b", "c"]
    assert repository.remove("b") == ["a", "c"]
    assert repository.load() == ["a", "c"]


def test_repository_tolerates_corrupted_value():
    storage = InMemoryStorage({ACTIVE_ORDER_IDS_KEY: "{nao é json"})

    assert ActiveOrderRepository(storage).load() == []


def test_legacy_single_id_is_migrated_in_one_pass():
    storage = InMemoryStorage({LEGACY_ACTIVE_ORDER_ID_KEY: "legado"})
    tracker = _tracker(storage, FakeFetcher({"legado": _snapshot("legado")}))

    displayed = tracker.reconcile()

    assert [order["id"] for order in displayed] == ["legado"]
    assert json.loads(storage.get_item(ACTIVE_ORDER_IDS_KEY)) == ["legado"]
    assert storage.get_item(LEGACY_ACTIVE_ORDER_ID_KEY) is None


def test_reconcile_is_idempotent():
    storage = InMemoryStorage({ACTIVE_ORDER_IDS_KEY: json.dumps(["a", "b", "a"])})
    fetcher = FakeFetcher({"a": _snapshot("a", number=1001), "b": _snapshot("b", "confirmed", number=1002)})
    tracker = _tracker(storage, fetcher)

    first = tracker.reconcile()
    persisted = storage.snapshot()
    second = tracker.reconcile()

    assert first == second
    assert storage.snapshot() == persisted
    assert [order["order_number"] for order in first] == [1002, 1001]


def test_absent_and_archived_orders_are_pruned():
    storage = InMemoryStorage({ACTIVE_ORDER_IDS_KEY: json.dumps(["ativo", "sumiu", "arquivado"])})
    fetcher = FakeFetcher(
        {
            "ativo": _snapshot("ativo", "shipped"),
            "arquivado": _snapshot("arquivado", "archived", number=1003),
        }
    )

    displayed = _tracker(storage, fetcher).reconcile()

    assert [order["id"] for order in displayed] == ["ativo"]
    assert json.loads(storage.get_item(ACTIVE_ORDER_IDS_KEY)) == ["ativo"]


def test_fetch_error_keeps_order_tracked_with_last_known_state():
    storage = InMemoryStorage({ACTIVE_ORDER_IDS_KEY: json.dumps(["a"])})
    fetcher = FakeFetcher({"a": _snapshot("a", "confirmed")})
    tracker = _tracker(storage, fetcher)
    tracker.reconcile()

    fetcher.failing.add("a")
    displayed = tracker.reconcile()

    assert json.loads(storage.get_item(ACTIVE_ORDER_IDS_KEY)) == ["a"]
    assert [order["status"] for order in displayed] == ["confirmed"]


def test_fetch_error_without_cached_state_is_tracked_but_not_displayed():
    storage = InMemoryStorage({ACTIVE_ORDER_IDS_KEY: json.dumps(["a"])})

    displayed = _tracker(storage, FakeFetcher(failing={"a"})).reconcile()

    assert displayed == []
    assert json.loads(storage.get_item(ACTIVE_ORDER_IDS_KEY)) == ["a"]


def test_cache_keeps_the_newest_state():
    cache = LatestOrderStateCache()

    assert cache.offer(_snapshot("a", "confirmed", minutes=5)) is True
    assert cache.offer(_snapshot("a", "new", minutes=1)) is False
    assert cache.offer(_snapshot("a", "shipped", minutes=6)) is True
    assert cache.get("a")["status"] == "shipped"


def test_stale_poll_response_does_not_override_newer_push():
    storage = InMemoryStorage({ACTIVE_ORDER_IDS_KEY: json.dumps(["a"])})
    fetcher = FakeFetcher({"a": _snapshot("a", "new", minutes=0)})
    tracker = _tracker(storage, fetcher)

    assert tracker.on_push(_snapshot("a", "confirmed", minutes=2)) is True
    displayed = tracker.reconcile()

    assert [order["status"] for order in displayed] == ["confirmed"]


def test_push_for_archived_order_untracks_it_and_stale_push_is_ignored():
    storage = InMemoryStorage({ACTIVE_ORDER_IDS_KEY: json.dumps(["a", "b"])})
    fetcher = FakeFetcher({"a": _snapshot("a", number=1001), "b": _snapshot("b", number=1002)})
    tracker = _tracker(storage, fetcher)
    tracker.reconcile()

    assert tracker.on_push(_snapshot("b", "archived", number=1002, minutes=3)) is True
    assert tracker.on_push(_snapshot("a", "new", number=1001, minutes=-1)) is False
    assert tracker.on_push(_snapshot("desconhecido")) is False

    assert [order["id"] for order in tracker.displayed] == ["a"]
    assert json.loads(storage.get_item(ACTIVE_ORDER_IDS_KEY)) == ["a"]


def test_two_tabs_converge_on_the_same_state(tmp_path):
    SessionLocal = build_session_factory(tmp_path / "tabs.db")
    db = SessionLocal()
    ensure_order_counter(db)
    bus = EventBus()
    order = create_order(db, order_draft(), bus=bus)

    fetcher = StoreOrderFetcher(SessionLocal)
    tab_a = _tracker(InMemoryStorage({ACTIVE_ORDER_IDS_KEY: json.dumps([order.id])}), fetcher)
    tab_b = _tracker(InMemoryStorage({LEGACY_ACTIVE_ORDER_ID_KEY: order.id}), fetcher)
    tab_a.reconcile()
    tab_b.reconcile()

    update_status(db, order.id, "pending_payment", bus=bus)
    update_status(db, order.id, "confirmed", bus=bus)
    update_status(db, order.id, "completed", bus=bus)

    assert tab_a.reconcile() == tab_b.reconcile()
    assert tab_a.displayed[0]["status"] == "completed"


def test_live_subscription_pushes_changes_and_stops_after_archival(tmp_path):
    SessionLocal = build_session_factory(tmp_path / "live.db")
    db = SessionLocal()
    ensure_order_counter(db)
    bus = EventBus()
    order = create_order(db, order_draft(), bus=bus)

    tracker = _tracker(
        InMemoryStorage(),
        StoreOrderFetcher(SessionLocal),
        live_subscriber=lambda order_id, callback: subscribe_to_order(order_id, callback, bus=bus),
    )
    tracker.track(order.id)
    tracker.reconcile()

    update_status(db, order.id, "pending_payment", bus=bus)
    assert tracker.displayed[0]["status"] == "pending_payment"

    update_status(db, order.id, "archived", bus=bus)
    assert tracker.displayed == []
    assert tracker.repository.load() == []
    assert bus.handler_count("order.status.changed") == 0


def test_json_file_storage_survives_restart(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text(json.dumps({LEGACY_ACTIVE_ORDER_ID_KEY: "x"}), encoding="utf-8")
    tracker = _tracker(JsonFileStorage(path), FakeFetcher({"x": _snapshot("x")}))

    tracker.reconcile()

    restarted = ActiveOrderRepository(JsonFileStorage(path))
    assert restarted.load() == ["x"]
    assert LEGACY_ACTIVE_ORDER_ID_KEY not in json.loads(path.read_text(encoding="utf-8"))


def test_run_reconciles_until_stopped():
    storage = InMemoryStorage({ACTIVE_ORDER_IDS_KEY: json.dumps(["a"])})
    fetcher = FakeFetcher({"a": _snapshot("a")})
    tracker = _tracker(storage, fetcher)

    thread, stop = tracker.start()
    deadline = datetime.now() + timedelta(seconds=5)
    while len(fetcher.calls) < 2 and datetime.now() < deadline:
        thread.join(0.01)
    stop.set()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert len(fetcher.calls) >= 2


class FlakyStorage(InMemoryStorage):
    def __init__(self, data=None, failures: int = 1) -> None:
        super().__init__(data)
        self.failures = failures

    def get_item(self, key):
        if self.failures:
            self.failures -= 1
            raise OSError("disco indisponível")
        return super().get_item(key)


def test_cli_tracker_survives_storage_error_and_prints_each_pass(capsys):
    script = runpy.run_path(str(Path(__file__).resolve().parents[1] / "scripts" / "track_orders.py"))
    storage = FlakyStorage({ACTIVE_ORDER_IDS_KEY: json.dumps(["a"])})
    fetcher = FakeFetcher({"a": _snapshot("a", number=1042)})
    tracker = script["PrintingTracker"](ActiveOrderRepository(storage), fetcher, poll_seconds=0.01)

    thread, stop = tracker.start()
    deadline = datetime.now() + timedelta(seconds=5)
    while not fetcher.calls and datetime.now() < deadline:
        thread.join(0.01)
    stop.set()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert storage.failures == 0
    assert fetcher.calls
    assert "#1042 new (a)" in capsys.readouterr().out
