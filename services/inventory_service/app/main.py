from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.common import (
    DEFAULT_APP_NAME,
    ServiceSettings,
    build_app,
    configure_logging,
    create_engine,
    dispose_engines,
    get_session_factory,
    get_settings,
    instrument_engine,
    resolve_database_url,
)

from .alerts import AlertNotifier
from .api.health import router as health_router
from .api.inventory import router as inventory_router
from .models import Base
from .providers import build_email_provider

SERVICE_NAME = "Inventory Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./inventory_service.db"


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Inventory Service FastAPI application."""

    resolved_settings = settings or get_settings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    engine = create_engine(database_url)
    session_factory = get_session_factory(database_url)
    instrument_engine(engine, resolved_settings)
    email_provider = build_email_provider(resolved_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        notifier = AlertNotifier(email_provider, frontend_url=resolved_settings.frontend_url)
        app.state.session_factory = session_factory
        app.state.email_provider = email_provider
        app.state.alert_notifier = notifier
        try:
            if resolved_settings.database_auto_create:
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            yield
        finally:
            await notifier.drain()
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.alert_notifier = None
            app.state.email_provider = None
            await dispose_engines()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(inventory_router)
    return app


app = create_app()
