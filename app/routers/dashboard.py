from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import OrderServiceError
from app.deps import require_admin_token, to_http_error
from app.services.dashboard import build_dashboard_summary, empty_dashboard_summary
from app.services.date_ranges import last_days_range, resolve_range

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"], dependencies=[Depends(require_admin_token)])


@router.get("/overview")
def dashboard_overview(start: Optional[str] = None, end: Optional[str] = None, db: Session = Depends(get_db)):
    default_start, default_end = last_days_range(30)
    try:
        range_start, range_end = resolve_range(start, end, default_start, default_end)
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    try:
        return build_dashboard_summary(db, range_start, range_end)
    except SQLAlchemyError:
        logger.warning("dashboard overview failed", exc_info=True)
        return empty_dashboard_summary(range_start, range_end)
