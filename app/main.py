import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import CORS_ORIGINS, ENV
from app.core.database import SessionLocal, engine
from app.core.logging_setup import configure_logging
from app.core.startup_checks import (
    ensure_migrations_applied,
    ensure_schema,
    seed_order_counter,
    sync_client_aggregates,
    validate_database_environment,
)
from app.middleware.observability import ObservabilityMiddleware
import app.models  # garante que os models são importados antes do create_all
from app.services.event_handlers import register_event_handlers

from app.routers.clients import router as clients_router
from app.routers.dashboard import router as dashboard_router
from app.routers.orders import router as orders_router
from app.routers.visits import router as visits_router

configure_logging()

logger = logging.getLogger(__name__)
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))

register_event_handlers()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        ensure_schema(engine)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        db = SessionLocal()
        try:
            seed_order_counter(db)
            sync_client_aggregates(db)
        finally:
            db.close()
    except Exception:
        logger.exception("startup failed env=%s", ENV)
        raise


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Confeitaria Orders API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)

# Routers
app.include_router(orders_router)
app.include_router(clients_router)
app.include_router(visits_router)
app.include_router(dashboard_router)


@app.get("/")
def root():
    return {"status": "ok"}
