from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from app.core.errors import ValidationFailure


def parse_datetime(value: str, is_end: bool) -> datetime:
    """Aceita datetime ISO ou só a data (início/fim do dia)."""
    text = (value or "").strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed_date = date.fromisoformat(text)
        except ValueError as exc:
            raise ValidationFailure("data inválida", field="end" if is_end else "start") from exc
        parsed = datetime.combine(parsed_date, time.max if is_end else time.min)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def last_days_range(days: int) -> tuple[datetime, datetime]:
    now = datetime.now(timezone.utc)
    start = datetime.combine(now.date() - timedelta(days=days - 1), time.min, tzinfo=timezone.utc)
    return start, now


def resolve_range(
    start_str: str | None,
    end_str: str | None,
    default_start: datetime,
    default_end: datetime,
) -> tuple[datetime, datetime]:
    if not start_str and not end_str:
        return default_start, default_end

    start = parse_datetime(start_str, is_end=False) if start_str else default_start
    end = parse_datetime(end_str, is_end=True) if end_str else default_end

    if start > end:
        raise ValidationFailure("intervalo inválido", field="start")
    return start, end
