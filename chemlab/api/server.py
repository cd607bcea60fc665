"""FastAPI application setup"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chemlab import __version__
from chemlab.api.routes import router
from chemlab.api.metrics_routes import router as metrics_router
from chemlab.api.middleware import setup_cors, setup_rate_limiting
from chemlab.config import LOG_LEVEL
from chemlab.db.connection import db
from chemlab.exceptions import ChemLabError
from chemlab.observability.metrics import track_error
from chemlab.observability.metrics_middleware import setup_metrics_middleware
from chemlab.observability.sentry_config import init_sentry

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application"""
    # Startup
    logger.info("Starting API server...")
    await db.init_pool()
    logger.info("Database pool initialized")

    yield

    # Shutdown
    logger.info("Shutting down API server...")
    await db.close_pool()
    logger.info("Database pool closed")


def create_api_application() -> FastAPI:
    """Create and configure FastAPI application"""
    init_sentry()

    app = FastAPI(
        title="ChemLab Progression API",
        description="XP, streaks, achievements and quiz grading for ChemLab learners",
        version=__version__,
        lifespan=lifespan
    )

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)
    setup_metrics_middleware(app)

    # Include routes
    app.include_router(router)
    app.include_router(metrics_router)

    @app.exception_handler(ChemLabError)
    async def chemlab_exception_handler(request: Request, exc: ChemLabError):
        track_error(type(exc).__name__, exc.operation or request.url.path)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        track_error(type(exc).__name__, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)}
        )

    logger.info("FastAPI application created")

    return app
