"""
Inbound webhook routes.
- Order intake from the online store (Salla or automation tools)
- Monday.com status changes (reverse sync)

Both answer 200 for recognized-but-ignored calls; providers retry or disable
hooks on other codes, so those are kept for auth and method errors.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
import hmac
import json
import logging

from ..config import settings
from ..document_store import DocumentStore, get_document_store
from ..services.webhook_log import MONDAY_WEBHOOK_LOGS, WEBHOOK_LOGS, record_error_log
from ..use_cases.order_intake import ingest_order_webhook
from ..use_cases.reverse_sync import challenge_echo, process_monday_event

router = APIRouter(tags=["webhooks"])
logger = logging.getLogger(__name__)

# Method checks happen in the handlers so a wrong method gets a JSON 405.
ANY_METHOD = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _cors_headers(allowed_headers: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": allowed_headers,
    }


async def _read_json(request: Request):
    """Parsed body, {} when empty, None when not JSON."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _api_key_valid(provided: str | None) -> bool:
    expected = settings.WEBHOOK_API_KEY
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


@router.api_route("/webhook", methods=ANY_METHOD)
async def order_intake_webhook(
    request: Request,
    store: DocumentStore = Depends(get_document_store),
):
    """
    Create an order from an external store event.

    Auth: ``X-API-Key`` header or ``apiKey`` query parameter.
    """
    headers = _cors_headers("Content-Type, X-API-Key")
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=headers)
    if request.method != "POST":
        return JSONResponse({"error": "Method not allowed"}, status_code=405, headers=headers)

    provided_key = request.headers.get("x-api-key") or request.query_params.get("apiKey")
    if not _api_key_valid(provided_key):
        logger.warning("⚠️ Intake webhook: invalid or missing API key")
        return JSONResponse(
            {"error": "Unauthorized", "message": "Invalid or missing API key"},
            status_code=401,
            headers=headers,
        )

    body = await _read_json(request)
    try:
        result = await run_in_threadpool(
            ingest_order_webhook,
            store=store,
            body=body,
            user_agent=request.headers.get("user-agent", "unknown"),
        )
    except Exception as e:
        logger.error(f"❌ Intake webhook error: {e}", exc_info=True)
        await run_in_threadpool(record_error_log, store, WEBHOOK_LOGS, payload=body, error=e)
        return JSONResponse(
            {"error": "Internal server error", "message": str(e)},
            status_code=500,
            headers=headers,
        )
    return JSONResponse(result.body, status_code=result.status_code, headers=headers)


@router.api_route("/monday-webhook", methods=ANY_METHOD)
async def monday_webhook(
    request: Request,
    store: DocumentStore = Depends(get_document_store),
):
    """
    Apply a Monday.com status-column change to the linked order.

    The subscription challenge is echoed before any other check.
    """
    headers = _cors_headers("Content-Type, Authorization")
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=headers)

    body = await _read_json(request)
    echo = challenge_echo(body)
    if echo is not None:
        logger.info("✅ Monday.com webhook challenge received")
        return JSONResponse(echo, status_code=200, headers=headers)

    if request.method != "POST":
        return JSONResponse({"error": "Method not allowed"}, status_code=405, headers=headers)

    try:
        result = await run_in_threadpool(
            process_monday_event,
            store=store,
            body=body,
            authorization=request.headers.get("authorization"),
        )
    except Exception as e:
        logger.error(f"❌ Monday webhook error: {e}", exc_info=True)
        await run_in_threadpool(record_error_log, store, MONDAY_WEBHOOK_LOGS, payload=body, error=e)
        return JSONResponse(
            {"error": "Internal server error", "message": str(e)},
            status_code=500,
            headers=headers,
        )
    return JSONResponse(result.body, status_code=result.status_code, headers=headers)
