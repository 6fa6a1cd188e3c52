# app/deps.py
from __future__ import annotations

import hmac
import logging

from fastapi import Header, HTTPException, status

from app.core import config
from app.core.errors import ConcurrencyConflict, IllegalTransition, NotFound, OrderServiceError, ValidationFailure

logger = logging.getLogger(__name__)


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    """Sem ADMIN_API_TOKEN configurado as rotas de admin ficam abertas (dev)."""
    configured = (config.ADMIN_API_TOKEN or "").strip()
    if not configured:
        return
    incoming = (x_admin_token or "").strip()
    if not incoming or not hmac.compare_digest(incoming, configured):
        logger.warning("admin token rejected")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")


def to_http_error(exc: OrderServiceError) -> HTTPException:
    if isinstance(exc, NotFound):
        detail = "Pedido não encontrado" if exc.entity == "order" else "Cliente não encontrado"
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    if isinstance(exc, IllegalTransition):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Transição de status inválida: {exc.current} -> {exc.requested}",
        )
    if isinstance(exc, ConcurrencyConflict):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Conflito ao gravar, tente novamente",
        )
    if isinstance(exc, ValidationFailure):
        detail: dict[str, str | None] = {"message": str(exc), "field": exc.field}
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Erro interno")
