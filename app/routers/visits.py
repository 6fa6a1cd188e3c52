from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import OrderServiceError
from app.deps import require_admin_token, to_http_error
from app.services import visits as visit_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["visits"])


@router.post("/visits")
def register_visit(db: Session = Depends(get_db)):
    today = datetime.now(timezone.utc).date()
    count = visit_service.increment_today(db, today)
    return {"date": today.isoformat(), "count": count}


@router.get("/visits", dependencies=[Depends(require_admin_token)])
def visits_in_range(start: Optional[str] = None, end: Optional[str] = None, db: Session = Depends(get_db)):
    today = datetime.now(timezone.utc).date().isoformat()
    start_key = start or end or today
    end_key = end or start or today
    try:
        total = visit_service.count_in_range(db, start_key, end_key)
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError:
        logger.warning("visit count failed", exc_info=True)
        total = 0
    return {
        "start": visit_service.date_key(start_key),
        "end": visit_service.date_key(end_key),
        "visits": total,
    }
