from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", status_code=status.HTTP_200_OK)
async def healthcheck() -> dict[str, str]:
    """Liveness: the process is serving requests."""

    return {"status": "ok"}


@router.get("/ready", status_code=status.HTTP_200_OK, response_model=None)
async def readiness(request: Request) -> dict[str, str] | JSONResponse:
    """Readiness: the ledger database answers a trivial query."""

    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "starting", "database": "unavailable"},
        )
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except DBAPIError:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "database": "unavailable"},
        )
    return {"status": "ok", "database": "ok"}
