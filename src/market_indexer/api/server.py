"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import aiosqlite
from fastapi import FastAPI, Request

from market_indexer.api.routes import error_response, register_routes
from market_indexer.errors import IndexerError, StorageUnavailableError
from market_indexer.service import IndexerService

log = logging.getLogger(__name__)


def create_app(service: IndexerService) -> FastAPI:
    """Build the HTTP app around an indexer service.

    The lifespan starts and stops the service. Starting is a no-op for a
    service that was started beforehand.
    """

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(title="Market Indexer", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(IndexerError)
    async def indexer_error_handler(request: Request, exc: IndexerError):
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc)
        return error_response(exc.status_code, exc.code, str(exc))

    @app.exception_handler(aiosqlite.Error)
    async def storage_error_handler(request: Request, exc: aiosqlite.Error):
        log.error("%s %s storage error: %s", request.method, request.url.path, exc)
        return error_response(
            StorageUnavailableError.status_code,
            StorageUnavailableError.code,
            "storage unavailable",
        )

    register_routes(app, service)
    return app
