from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import Lock

from sqlalchemy.orm import Session

from app.core.config import ORDER_NUMBER_FLOOR
from app.models.counter import Counter

logger = logging.getLogger(__name__)

ORDER_NUMBER_COUNTER = "order_number"


class SequenceAllocator(ABC):
    @abstractmethod
    def allocate(self, db: Session) -> int:
        """Retorna o próximo número de pedido dentro da transação de `db`.

        Não faz commit: o valor só vale se o pedido for gravado no mesmo commit.
        """


class SqlSequenceAllocator(SequenceAllocator):
    """Contador em linha da tabela `counters` com controle otimista por versão.

    Dois chamadores que leem a mesma versão não conseguem gravar ambos: o segundo
    flush falha (StaleDataError) ou, se a linha ainda não existia, bate na chave
    primária (IntegrityError). Quem chama converte isso em ConcurrencyConflict.
    """

    def __init__(self, *, name: str = ORDER_NUMBER_COUNTER, floor: int = ORDER_NUMBER_FLOOR) -> None:
        self.name = name
        self.floor = floor

    def allocate(self, db: Session) -> int:
        counter = db.get(Counter, self.name, populate_existing=True)
        if counter is None:
            counter = Counter(name=self.name, value=self.floor + 1)
            db.add(counter)
        else:
            counter.value = int(counter.value) + 1
        db.flush()
        return int(counter.value)


class InMemorySequenceAllocator(SequenceAllocator):
    def __init__(self, *, start: int = ORDER_NUMBER_FLOOR) -> None:
        self._value = start
        self._lock = Lock()

    def allocate(self, db: Session) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def last_value(self) -> int:
        return self._value


default_allocator = SqlSequenceAllocator()


def ensure_order_counter(db: Session, *, floor: int = ORDER_NUMBER_FLOOR) -> Counter:
    counter = db.get(Counter, ORDER_NUMBER_COUNTER)
    if counter is not None:
        return counter
    counter = Counter(name=ORDER_NUMBER_COUNTER, value=floor)
    db.add(counter)
    db.commit()
    logger.info("order counter seeded at %s", floor)
    return counter


def current_order_number(db: Session) -> int | None:
    counter = db.get(Counter, ORDER_NUMBER_COUNTER, populate_existing=True)
    return int(counter.value) if counter is not None else None
