from pathlib import Path
from contextlib import asynccontextmanager
import asyncio

from alembic import command
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes import health, market
from app.core.config import settings
from app.core.errors import MarketServiceError
from app.core.logging import get_logger


log = get_logger("app")


def run_migrations() -> None:
    """Execute Alembic migrations programmatically on startup."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    log.info("Running Alembic migrations to head")
    command.upgrade(alembic_cfg, "head")
    log.info("Alembic migrations applied")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Log environment mode
    log.info(f"Starting application in {settings.ENV.upper()} mode")
    if settings.is_production:
        log.info("Production mode: Debug disabled, docs disabled, stricter logging")
    else:
        log.info("Development mode: Debug enabled, docs available")

    # Startup
    try:
        run_migrations()
    except Exception:
        log.exception("Failed to apply migrations on startup")
        raise

    if not settings.SUBGRAPH_URL:
        log.info("SUBGRAPH_URL not set; catalog catch-up sync is disabled")

    yield

    log.info("Application shutdown complete")


# Configure FastAPI based on environment
app = FastAPI(
    title="Creator Token Market Service",
    description="Market data aggregation for creator tokens: live pricing, 24h change and volume",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production for security
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    # Debug mode only in development
    debug=settings.debug_enabled,
)


@app.exception_handler(asyncio.TimeoutError)
async def deadline_exceeded_handler(request: Request, exc: asyncio.TimeoutError) -> JSONResponse:
    log.error(f"Request deadline exceeded: {request.method} {request.url.path}")
    return JSONResponse(
        status_code=504,
        content={"error": "Request timed out", "details": f"Deadline of {settings.REQUEST_DEADLINE_SECONDS}s exceeded"},
    )


@app.exception_handler(MarketServiceError)
async def market_error_handler(request: Request, exc: MarketServiceError) -> JSONResponse:
    log.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Failed to fetch market data", "details": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception(f"Unhandled error on {request.method} {request.url.path}")
    details = str(exc) if settings.debug_enabled else "Internal server error"
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": details})


app.include_router(market.router)
app.include_router(health.router)
