from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from api import create_router
from config import Settings, get_settings
from identity import HttpIdentityResolver, IdentityResolver
from locks import RoomLocks
from repository import create_repository
from rooms import HttpRoomDirectory
from services import ReservationService

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(level.upper())


def build_service(settings: Settings, resources: Optional[List] = None) -> ReservationService:
    """Build the service from settings, appending anything that needs closing to ``resources``."""
    repo = create_repository(settings.database_path)
    rooms = HttpRoomDirectory(settings.room_service_url, timeout=settings.downstream_timeout)
    if resources is not None:
        resources.extend(r for r in (repo, rooms) if hasattr(r, "close"))
    return ReservationService(repo=repo, rooms=rooms, locks=RoomLocks(timeout=settings.lock_timeout))


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[ReservationService] = None,
    resolver: Optional[IdentityResolver] = None,
) -> FastAPI:
    """Create the FastAPI app; collaborators not passed in are built from settings.

    Clients and connections built here are closed on shutdown. Injected
    collaborators belong to the caller and are left open.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    owned: List = []
    if service is None:
        service = build_service(settings, owned)
    if resolver is None:
        resolver = HttpIdentityResolver(settings.auth_service_url, timeout=settings.downstream_timeout)
        owned.append(resolver)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        for resource in owned:
            resource.close()
        logger.info("Closed %d client resources", len(owned))

    app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service
    app.state.owned_resources = owned

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "-")
        logger.exception(
            "request_id=%s unhandled error on %s %s", request_id, request.method, request.url.path
        )
        body = {"detail": "Internal server error."}
        if settings.debug:
            body["error"] = repr(exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body,
            headers={REQUEST_ID_HEADER: request_id},
        )

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    app.include_router(create_router(service, resolver))
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8004)
