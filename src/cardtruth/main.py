from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from cardtruth.api.middleware.error_handler import (
    handle_generic_error,
    handle_statement_processing_error,
    handle_validation_error,
)
from cardtruth.api.middleware.logging import RequestLoggingMiddleware
from cardtruth.api.v1 import router as v1_router
from cardtruth.api.v1.health import router as health_router
from cardtruth.config import get_settings
from cardtruth.core.exceptions import StatementProcessingError
from cardtruth.core.logging import setup_logging
from cardtruth.db.session import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await init_db()
    yield
    # Shutdown


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level, json_format=settings.log_json)

    app = FastAPI(
        title="CardTruth API",
        description="Credit card statement ingestion and card truth convergence",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers (order matters - most specific first)
    app.add_exception_handler(StatementProcessingError, handle_statement_processing_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_generic_error)

    # Register routers
    app.include_router(health_router)
    app.include_router(v1_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
