from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ValidationFailure
from app.models.daily_visit import DailyVisit

logger = logging.getLogger(__name__)


def date_key(value: date | datetime | str) -> str:
    """Chave do dia em UTC, a mesma régua usada no filtro de pedidos."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    raw = str(value).strip()
    try:
        if len(raw) > 10:
            return date_key(datetime.fromisoformat(raw.replace("Z", "+00:00")))
        return date.fromisoformat(raw).isoformat()
    except ValueError as exc:
        raise ValidationFailure("data inválida", field="date") from exc


def _bump(db: Session, key: str) -> int:
    result = db.execute(
        update(DailyVisit)
        .where(DailyVisit.date_key == key)
        .values(count=DailyVisit.count + 1)
    )
    return result.rowcount or 0


def increment_today(db: Session, today: date | None = None) -> int:
    """+1 no contador do dia (UPDATE atômico; cria com 1 se ainda não existe)."""
    key = date_key(today or datetime.now(timezone.utc).date())
    try:
        if not _bump(db, key):
            db.add(DailyVisit(date_key=key, count=1))
            try:
                db.flush()
            except IntegrityError:
                # outra requisição criou o dia entre o UPDATE e o INSERT
                db.rollback()
                _bump(db, key)
        db.commit()
    except Exception:
        db.rollback()
        raise
    visit = db.get(DailyVisit, key, populate_existing=True)
    return int(visit.count) if visit is not None else 0


def count_in_range(db: Session, start: date | datetime | str, end: date | datetime | str) -> int:
    start_key = date_key(start)
    end_key = date_key(end)
    if start_key > end_key:
        raise ValidationFailure("intervalo inválido", field="start")
    total = (
        db.query(func.coalesce(func.sum(DailyVisit.count), 0))
        .filter(DailyVisit.date_key >= start_key, DailyVisit.date_key <= end_key)
        .scalar()
    )
    return int(total or 0)
