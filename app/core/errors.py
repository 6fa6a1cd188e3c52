from __future__ import annotations


class OrderServiceError(Exception):
    """Base das falhas de domínio de pedidos/clientes."""


class ConcurrencyConflict(OrderServiceError):
    """Alocação de número + gravação do pedido não pôde ser serializada.

    O chamador deve refazer a criação inteira, não apenas a alocação.
    """


class NotFound(OrderServiceError):
    def __init__(self, entity: str, key: str) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class IllegalTransition(OrderServiceError):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"illegal status transition {current} -> {requested}")
        self.current = current
        self.requested = requested


class ValidationFailure(OrderServiceError):
    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field
