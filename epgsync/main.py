from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from epgsync.config import settings, setup_logging
from epgsync.database import close_db, init_db

from epgsync.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting EPG Sync Service...")

    try:
        logger.info("Initializing database...")
        await init_db()
        logger.info("EPG Sync Service started successfully")
    except Exception as e:
        logger.error(f"Failed to start EPG Sync Service: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down EPG Sync Service...")
    await close_db()
    logger.info("EPG Sync Service stopped")


app = FastAPI(
    title="EPG Sync Service",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )


def main() -> None:
    """Run the API server with uvicorn"""
    import uvicorn

    logger.info(f"Starting EPG Sync Service on {settings.server_host}:{settings.server_port}")
    uvicorn.run(
        "epgsync.main:app",
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
