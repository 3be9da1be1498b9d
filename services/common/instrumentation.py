import logging
from typing import Any, cast

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import OperationalError

from .config import ServiceSettings
from .tracing import configure_tracing

_LOGGER = logging.getLogger(__name__)


async def _database_unavailable(request: Request, exc: Exception) -> JSONResponse:
    _LOGGER.error("Database unavailable while serving %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Persistence layer unavailable"},
    )


def instrument_app(app: FastAPI, settings: ServiceSettings) -> None:
    """Attach metrics exporters when enabled."""

    if settings.enable_metrics:
        Instrumentator(excluded_handlers=["/health", "/metrics"]).instrument(app).expose(app)

    state = cast(Any, app.state)
    state.settings = settings


def build_app(settings: ServiceSettings, **extra_kwargs: Any) -> FastAPI:
    """Create a FastAPI instance with standard metadata, error mapping and instrumentation."""

    app = FastAPI(title=settings.app_name, version="0.1.0", **extra_kwargs)
    app.add_exception_handler(OperationalError, _database_unavailable)
    instrument_app(app, settings)
    configure_tracing(app, settings)
    return app
