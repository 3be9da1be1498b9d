"""Dependency helpers for the inventory service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import cast

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.common import ServiceSettings, bind_owner, lifespan_session

from .alerts import AlertNotifier
from .repository import InventoryRepository
from .services import InventoryService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_repository(session: AsyncSession = Depends(get_session)) -> InventoryRepository:
    return InventoryRepository(session)


def get_settings(request: Request) -> ServiceSettings:
    return cast(ServiceSettings, request.app.state.settings)


async def get_owner_id(x_owner_id: str | None = Header(default=None, alias="X-Owner-Id")) -> int:
    """Resolve the calling owner from the ``X-Owner-Id`` header and bind it to request logs."""

    if x_owner_id is None or not x_owner_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Owner identity is required")
    try:
        owner_id = int(x_owner_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Owner identity is invalid") from exc
    if owner_id <= 0:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Owner identity is invalid")
    bind_owner(owner_id)
    return owner_id


def get_notifier(request: Request) -> AlertNotifier | None:
    return getattr(request.app.state, "alert_notifier", None)


def get_inventory_service(
    repository: InventoryRepository = Depends(get_repository),
    settings: ServiceSettings = Depends(get_settings),
    notifier: AlertNotifier | None = Depends(get_notifier),
) -> InventoryService:
    return InventoryService(repository, settings, notifier)
