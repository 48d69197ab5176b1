from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlmodel import Session
import structlog

from crewkit.config import settings
from crewkit.db import create_db_and_tables, engine
from crewkit.error import install_error_handlers
from crewkit.logging import RequestIdMiddleware, setup_logging
from crewkit.routers import (
    assemblies,
    auth,
    boxhero,
    equipment,
    inventory,
    metrics,
    reports,
    settings as settings_router,
    teams,
    usage,
    users,
)
from crewkit.services.bootstrap import ensure_superuser

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    create_db_and_tables()
    with Session(engine) as session:
        ensure_superuser(session, settings.bootstrap_superuser_email, settings.bootstrap_superuser_password)
    logger.info("startup", app=settings.app_name, timezone=settings.timezone)
    yield
    logger.info("shutdown")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

if settings.rate_limit_enabled:
    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

install_error_handlers(app)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(teams.router)
app.include_router(equipment.router)
app.include_router(inventory.router)
# /assemblies/usage must win over /assemblies/{assembly_id}
app.include_router(usage.router)
app.include_router(assemblies.router)
app.include_router(metrics.router)
app.include_router(reports.router)
app.include_router(settings_router.router)
app.include_router(boxhero.router)


@app.get("/health")
def health():
    return {"ok": True}
