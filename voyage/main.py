import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from . import config
from .api import audit_logs, balances, expenses, notifications, system, users
from .config import settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .services.system_settings import ensure_default_settings

configure_logging(settings.log_level, json_output=settings.log_json)

logger = logging.getLogger(__name__)

app = FastAPI(title="Voyage Account - Expense Reimbursement")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
    config.Base.metadata.create_all(bind=config.engine)
    with config.SessionLocal() as session:
        ensure_default_settings(session)
    logger.info("Voyage Account started against %s", config.engine.url.render_as_string(hide_password=True))


app.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
app.include_router(balances.router, prefix="/balances", tags=["balances"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
app.include_router(audit_logs.router)
app.include_router(system.router, prefix="/settings", tags=["settings"])


@app.get("/health")
def health() -> dict:
    with config.SessionLocal() as session:
        session.execute(text("SELECT 1"))
    return {"status": "ok"}
