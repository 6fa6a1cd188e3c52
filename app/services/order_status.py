"""Order status transition helpers."""

from __future__ import annotations

from app.core.errors import IllegalTransition

ORDER_STATUSES: list[str] = ["new", "pending_payment", "confirmed", "shipped", "completed", "archived"]

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "new": {"pending_payment", "archived"},
    "pending_payment": {"confirmed", "archived"},
    "confirmed": {"shipped", "completed", "archived"},
    "shipped": {"completed", "archived"},
    "completed": {"archived"},
    "archived": set(),
}

# Status que contam como venda paga nos relatórios
REVENUE_STATUSES: frozenset[str] = frozenset({"confirmed", "shipped", "completed"})

TERMINAL_STATUSES: frozenset[str] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Visão do cliente: pedidos que ainda não foram finalizados
CUSTOMER_CLOSED_STATUSES: frozenset[str] = frozenset({"completed", "archived"})


def normalize_status(status: str | None) -> str:
    return (status or "").strip().lower()


def is_known_status(status: str | None) -> bool:
    return normalize_status(status) in ALLOWED_TRANSITIONS


def can_transition(current: str, new: str) -> bool:
    """Return whether order can move from current to new status."""
    return normalize_status(new) in ALLOWED_TRANSITIONS.get(normalize_status(current), set())


def ensure_transition(current: str, new: str) -> str:
    """Validate the edge and return the normalized target status."""
    target = normalize_status(new)
    if not can_transition(current, target):
        raise IllegalTransition(normalize_status(current), target)
    return target
