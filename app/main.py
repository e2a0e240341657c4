"""Acquirer Settlement Dashboard - Main Application."""

from fastapi import FastAPI

from app.api.routes import imports, transactions
from app.core.config import settings
from app.core.database import Base, engine
from app.core.logging import setup_logging

# Configure logging before anything else
logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Imports",
        "description": (
            "Preview and import semicolon-delimited acquirer exports (Brazilian "
            "dates and currency), follow background imports, browse the import "
            "history and export the records of one import."
        ),
    },
    {
        "name": "Transactions",
        "description": (
            "Query settled transactions by date range, time of day, acquirer and "
            "modality, with totals for the same filter and CSV export."
        ),
    },
]


app = FastAPI(
    title="Acquirer Settlement Dashboard",
    description=(
        "## Acquirer Settlement Dashboard API\n\n"
        "Ingests transaction exports from payment acquirers, stores them "
        "idempotently and serves filtered, paginated views with gross/net "
        "totals.\n\n"
        "### Import outcomes\n"
        "- `success` - every record inserted\n"
        "- `partial` - some records inserted, others were duplicates, errors "
        "or skipped after cancellation\n"
        "- `error` - nothing inserted and at least one error\n"
        "- `empty` - nothing inserted and no errors (e.g. all duplicates)\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Check what a file contains\n"
        "curl -X POST /api/v1/imports/preview -F file=@data/sample_export.csv\n\n"
        "# 2. Import it\n"
        "curl -X POST /api/v1/imports/upload -H 'X-User-Id: ops' "
        "-F file=@data/sample_export.csv\n\n"
        "# 3. Afternoon PIX transactions of one day\n"
        "curl '/api/v1/transactions?start_date=2025-01-15&end_date=2025-01-15"
        "&start_time=12:00&end_time=18:00&modality=PIX'\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(imports.router, prefix="/api/v1/imports", tags=["Imports"])
app.include_router(
    transactions.router, prefix="/api/v1/transactions", tags=["Transactions"]
)

logger.info("Settlement dashboard API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    """
    return {"status": "healthy", "service": "settlement-dashboard"}
