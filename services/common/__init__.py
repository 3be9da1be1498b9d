"""Shared plumbing for the VBMS inventory service: settings, persistence, logging and telemetry."""

from .config import DEFAULT_APP_NAME, ServiceSettings, get_settings
from .database import (
    create_engine,
    dispose_engines,
    get_session_factory,
    lifespan_session,
    resolve_database_url,
    run_bounded,
)
from .instrumentation import build_app, instrument_app
from .logging import bind_owner, configure_logging
from .tracing import configure_tracing, instrument_engine, operation_span

__all__ = [
    "DEFAULT_APP_NAME",
    "ServiceSettings",
    "get_settings",
    "create_engine",
    "dispose_engines",
    "get_session_factory",
    "lifespan_session",
    "resolve_database_url",
    "run_bounded",
    "build_app",
    "instrument_app",
    "bind_owner",
    "configure_logging",
    "configure_tracing",
    "instrument_engine",
    "operation_span",
]
