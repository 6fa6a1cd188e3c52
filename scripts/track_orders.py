#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from threading import Event

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from app.core.config import ACTIVE_ORDER_POLL_SECONDS, ORDER_API_BASE_URL  # noqa: E402
from app.core.logging_setup import configure_logging  # noqa: E402
from app.tracking import ActiveOrderRepository, ActiveOrderTracker, HttpOrderFetcher, JsonFileStorage  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Acompanha os pedidos ativos salvos localmente.")
    parser.add_argument("--storage", default=str(ROOT / ".active_orders.json"), help="Arquivo de estado local")
    parser.add_argument("--base-url", default=ORDER_API_BASE_URL, help="URL da API de pedidos")
    parser.add_argument("--track", action="append", default=[], help="Id de pedido para passar a acompanhar")
    parser.add_argument("--interval", type=float, default=ACTIVE_ORDER_POLL_SECONDS, help="Segundos entre consultas")
    parser.add_argument("--once", action="store_true", help="Faz uma única reconciliação e sai")
    return parser.parse_args(argv)


def print_orders(orders: list[dict]) -> None:
    if not orders:
        print("Nenhum pedido ativo.")
        return
    for order in orders:
        print(f"#{order.get('order_number')} {order.get('status')} ({order.get('id')})")


class PrintingTracker(ActiveOrderTracker):
    def reconcile(self) -> list[dict]:
        orders = super().reconcile()
        print_orders(orders)
        return orders


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()

    fetcher = HttpOrderFetcher(base_url=args.base_url)
    tracker = PrintingTracker(
        ActiveOrderRepository(JsonFileStorage(args.storage)),
        fetcher,
        poll_seconds=args.interval,
    )
    try:
        for order_id in args.track:
            tracker.track(order_id)
        if args.once:
            tracker.reconcile()
            return 0
        stop = Event()
        try:
            tracker.run(stop)
        except KeyboardInterrupt:
            stop.set()
    finally:
        tracker.close()
        fetcher.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
