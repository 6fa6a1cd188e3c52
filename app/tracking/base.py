from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class OrderFetchError(Exception):
    """Falha transitória ao buscar um pedido (rede, 5xx, banco indisponível)."""


class KeyValueStorage(ABC):
    """Contrato do armazenamento durável do navegador (estilo localStorage)."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Retorna o valor salvo ou None."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Grava o valor (sempre string)."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a chave; ausente não é erro."""


class OrderFetcher(ABC):
    @abstractmethod
    def fetch(self, order_id: str) -> dict[str, Any] | None:
        """Estado atual do pedido.

        None significa ausência confirmada; falha transitória levanta OrderFetchError.
        """
