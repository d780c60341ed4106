"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from sqlalchemy import text

from ticketdesk.core.config import settings
from ticketdesk.db.session import engine

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Mailbox addresses never leave the service
    )
    logging.info("Sentry initialized for error tracking")


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Ticketdesk API",
    description="Mailbox ingestion and ticket deduplication service",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)


# ============================================================================
# Routers
# ============================================================================

from ticketdesk.routers import ingestion_router, internal_router, tickets_router

# Scheduler trigger (protected by JOB_TOKEN)
app.include_router(internal_router)

# Admin: manual runs, latest run, blocklist
app.include_router(ingestion_router)

# Agent ticket actions
app.include_router(tickets_router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
