import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tablepos.core.config import CORS_ORIGINS, ENV, IS_DEV
from tablepos.core.database import Base, engine
from tablepos.core.logging_setup import configure_logging
from tablepos.core.startup_checks import ensure_migrations_applied, validate_database_environment
from tablepos.engine.consolidation import TableLockRegistry
from tablepos.middleware.observability import ObservabilityMiddleware
import tablepos.models  # noqa: F401  registers every table on Base.metadata
import tablepos.services.event_handlers  # noqa: F401  subscribes order event handlers

from tablepos.routers.internal_metrics import router as internal_metrics_router
from tablepos.routers.ordering import router as ordering_router

configure_logging()

logger = logging.getLogger(__name__)
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


def _startup_tasks() -> None:
    logger.info("Starting tablepos env=%s", ENV)
    validate_database_environment()
    if IS_DEV:
        Base.metadata.create_all(bind=engine)
    ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="tablepos API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# one lock per dining table, shared by every request in this process
app.state.table_locks = TableLockRegistry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)

app.include_router(ordering_router)
app.include_router(internal_metrics_router)


@app.get("/")
def health():
    return {"status": "ok"}
