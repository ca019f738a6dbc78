"""
Application entrypoint: FastAPI app with the scheduling routes and client lifecycle.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.features.scheduling import close_scheduling_orchestrator, scheduling_router
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.routes import health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        remote_solver=settings.solver_endpoint() is not None,
    )

    yield

    logger.info("Application shutting down")
    try:
        # Store, queue and remote solver clients are created lazily on first use
        await close_scheduling_orchestrator()
    except Exception as e:
        logger.error("Error closing scheduling clients", error=str(e))
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Scheduling Engine",
    description="Multi-account meeting negotiation with tentative holds",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(scheduling_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
