"""FastAPI application exposing the sync store at /api/sync."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..config import Config
from ..sync import (
    InvalidRequestError,
    RecordNotFoundError,
    RecordStore,
    SyncService,
    create_store,
)

logger = logging.getLogger(__name__)

SYNC_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(
    config: Config,
    store: RecordStore | None = None,
    service: SyncService | None = None,
) -> FastAPI:
    """Create the FastAPI sync application.

    Args:
        config: Application configuration.
        store: Optional record store. Built from ``config.store`` if omitted.
        service: Optional pre-built service, e.g. with a seeded generator.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="kohasync",
        description="Shared record sync for the Koha expense and gift tracker",
        version="0.1.0",
    )

    if service is None:
        service = SyncService(store if store is not None else create_store(config.store))

    app.state.config = config
    app.state.service = service

    cors_headers = {"Access-Control-Allow-Origin": config.server.allowed_origin}

    def json_response(content: dict[str, Any], status_code: int = 200) -> JSONResponse:
        return JSONResponse(content=content, status_code=status_code, headers=cors_headers)

    async def dispatch(request: Request, sync_id: str | None) -> dict[str, Any]:
        method = request.method

        if method in ("PUT", "POST") and sync_id:
            payload = await request.json()
            record = service.update(sync_id, payload)
            return {"success": True, "data": record.to_dict()}

        if method == "POST":
            payload = await request.json()
            new_id = service.create(payload)
            return {"success": True, "id": new_id}

        if method == "GET" and sync_id:
            record = service.read(sync_id)
            return {"success": True, "data": record.to_dict()}

        raise InvalidRequestError(f"{method} with id={sync_id!r} matches no operation")

    @app.api_route("/api/sync", methods=SYNC_METHODS)
    async def sync_endpoint(request: Request) -> Response:
        """Create, read or update a shared record."""
        if request.method == "OPTIONS":
            return Response(
                status_code=204,
                headers={
                    **cors_headers,
                    "Access-Control-Allow-Methods": "GET, POST, PUT, OPTIONS",
                    "Access-Control-Allow-Headers": "Content-Type",
                },
            )

        # An empty id counts as no id
        sync_id = request.query_params.get("id") or None

        try:
            return json_response(await dispatch(request, sync_id))
        except RecordNotFoundError:
            return json_response({"error": "not_found"}, status_code=404)
        except InvalidRequestError as e:
            logger.debug(f"Invalid sync request: {e}")
            return json_response({"error": "invalid_request"}, status_code=400)
        except Exception as e:
            logger.exception(f"Sync request failed: {e}")
            return json_response({"error": str(e)}, status_code=500)

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint for monitoring and load balancers.

        Always returns 200 OK even if the store is unavailable.
        """
        health = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "components": {
                "store": service.store.backend_name,
            },
        }

        try:
            health["components"]["records"] = service.store.count()
        except Exception as e:
            health["status"] = "degraded"
            health["components"]["store_error"] = str(e)

        return health

    return app
