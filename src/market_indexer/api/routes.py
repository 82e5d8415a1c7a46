"""HTTP endpoints: webhook ingestion, purchase identifiers, receipts, health."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from market_indexer.errors import AuthenticationError
from market_indexer.models.snapshots import to_dict

if TYPE_CHECKING:
    from market_indexer.service import IndexerService

SIGNATURE_HEADER = "x-alchemy-signature"


def webhook_router(service: IndexerService) -> APIRouter:
    """Build the webhook router around the service pipeline."""
    api = APIRouter()

    async def receive(request: Request):
        raw_body = await request.body()
        result = await service.pipeline.process(
            raw_body, request.headers.get(SIGNATURE_HEADER),
        )
        return {
            "success": True,
            "data": {
                "webhookId": result.webhook_id,
                "totalLogs": result.total_logs,
                "processed": result.processed,
                "duplicates": result.duplicates,
                "ignored": result.ignored,
                "failed": result.failed,
            },
        }

    api.add_api_route("/webhooks", receive, methods=["POST"])
    api.add_api_route("/webhooks/alchemy", receive, methods=["POST"])

    @api.get("/webhooks/health")
    async def webhook_health():
        return {
            "status": "ok",
            "signatureVerification": service.guard.verification_enabled,
        }

    return api


def purchase_router(service: IndexerService) -> APIRouter:
    """Build the buyer-facing router (eligibility and receipts)."""
    api = APIRouter()

    def _session_wallet(request: Request) -> str:
        authz = request.headers.get("Authorization", "")
        if not authz.startswith("Bearer "):
            raise AuthenticationError("missing session token")
        wallet = service.sessions.wallet_for(authz.split(" ", 1)[1].strip())
        if wallet is None:
            raise AuthenticationError("invalid session token")
        return wallet

    @api.get("/purchase-identifier/{content_id}")
    async def purchase_identifier(content_id: str, request: Request):
        """Return the on-chain identifier a buyer passes to the purchase call."""
        wallet = _session_wallet(request)
        result = await service.gate.check(content_id, wallet)
        return {
            "success": True,
            "data": {
                "contentId": result.content_id,
                "contentIdentifier": result.content_identifier,
            },
        }

    @api.get("/receipts/{purchase_id}")
    async def get_receipt(purchase_id: int):
        snapshot = await service.read_model.get_receipt(purchase_id)
        if snapshot is None:
            return error_response(404, "not_found", f"receipt {purchase_id} not found")
        return {"success": True, "data": to_dict(snapshot)}

    return api


def health_router(service: IndexerService) -> APIRouter:
    api = APIRouter()

    @api.get("/health")
    async def health_check():
        return {
            "status": "ok" if service.started else "starting",
            "environment": service.cfg.environment.value,
        }

    return api


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
    )


def register_routes(app: FastAPI, service: IndexerService) -> None:
    app.include_router(health_router(service))
    app.include_router(webhook_router(service))
    app.include_router(purchase_router(service))
