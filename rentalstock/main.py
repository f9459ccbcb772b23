"""Application wiring: logging, middleware, routers, error handlers, scheduler."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from .core.config import settings
from .core.errors import register_error_handlers
from .core.logging import configure_logging
from .db.migrate import run_migrations
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware

# Importing the models registers them with the metadata used by create_all.
from .models import audit as _audit  # noqa: F401
from .models import equipment as _equipment  # noqa: F401
from .models import maintenance as _maintenance  # noqa: F401
from .models import reorder as _reorder  # noqa: F401
from .models import stock_order as _stock_order  # noqa: F401
from .models import supplier as _supplier  # noqa: F401
from .routers import (
    api_auth,
    api_equipment,
    api_inventory,
    api_maintenance,
    api_reorder,
    api_stock,
    api_stock_orders,
    api_suppliers,
)
from .services.scheduler import start_scheduler, stop_scheduler

configure_logging(settings.LOG_LEVEL, fmt=settings.LOG_FORMAT, service=settings.APP_NAME, env=settings.APP_ENV)
logger = logging.getLogger("rentalstock")

app = FastAPI(title=settings.APP_NAME)
app.add_middleware(RequestIdMiddleware)
if settings.allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

for module in (
    api_auth,
    api_equipment,
    api_inventory,
    api_reorder,
    api_suppliers,
    api_stock_orders,
    api_maintenance,
    api_stock,
):
    app.include_router(module.router)

register_error_handlers(app)
Instrumentator().instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


@app.on_event("startup")
def _startup() -> None:
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)
    start_scheduler()
    logger.info("app.started", extra={"extra_data": {"env": settings.APP_ENV}})


@app.on_event("shutdown")
def _shutdown() -> None:
    stop_scheduler()


__all__ = ["app"]
