from __future__ import annotations

import re

from app.core.config import DEFAULT_COUNTRY_CODE
from app.core.errors import ValidationFailure

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


def normalize_phone(value: str | None, *, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Telefone como chave do cliente: só dígitos, sempre com DDI.

    "(11) 99999-9999" -> "5511999999999". Números com DDD + 8/9 dígitos recebem o
    DDI padrão (inclusive DDD 55); o resto é tratado como já internacional.
    """
    raw = digits_only(value)
    if not raw:
        raise ValidationFailure("telefone vazio", field="phone")
    if len(raw) in {10, 11}:
        return f"{country_code}{raw}"
    return raw
