import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from wms_shared.config import settings
from wms_shared.database import init_db, close_db
from services.event_service.api.routes import router as idempotency_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan: startup and shutdown."""
    # Startup
    logger.info(f"Starting {settings.service_name}")
    await init_db()
    yield
    # Shutdown
    logger.info(f"Shutting down {settings.service_name}")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title="Event Service",
    description="Idempotent, transactional event processing for the WMS",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(idempotency_router)


# Health check endpoints
@app.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": settings.service_name}


@app.get("/ready")
async def readiness_check():
    """Readiness check - service can accept traffic."""
    return {"status": "ready", "service": settings.service_name}


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Event Service",
        "version": "1.0.0",
        "docs": "/docs",
    }


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}")
    content = {"success": False, "message": "Internal server error"}
    if settings.environment == "development":
        content["error"] = str(exc)
    return JSONResponse(
        status_code=500,
        content=content,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.service_port,
    )
