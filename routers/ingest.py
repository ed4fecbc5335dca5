from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from core.cors import cors_error, cors_json, preflight_response
from core.errors import IngestValidationError, ProxyError
from core.logger import get_logger
from services.ingest import record_checkout_event, validate_checkout_event

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["ingest"])

INGEST_METHODS = ["POST", "OPTIONS"]
INGEST_ALLOW_HEADERS = "Content-Type"


@router.options("/ingest")
def ingest_preflight(request: Request):
    return preflight_response(request, INGEST_METHODS, INGEST_ALLOW_HEADERS)


@router.get("/ingest")
def ingest_info():
    return {
        "endpoint": "/api/ingest",
        "methods": ["POST"],
        "description": "Receives checkout completion events from the SmartSell web pixel",
        "requiredFields": ["orderId", "items"],
        "itemFields": ["productId", "variantId", "quantity"],
    }


@router.post("/ingest")
async def ingest(request: Request):
    """
    Checkout completion events posted by the web pixel from the customer's
    browser. No authentication.
    """
    try:
        try:
            data = await request.json()
        except ValueError as e:
            raise IngestValidationError("Request body must be valid JSON") from e

        event = validate_checkout_event(data)
        content = record_checkout_event(event)
    except ProxyError as e:
        logger.warning(f"Rejected checkout event: {e.message}")
        return cors_error(request, e, INGEST_METHODS, "Failed to process checkout event", INGEST_ALLOW_HEADERS)

    return cors_json(request, content, INGEST_METHODS, allow_headers=INGEST_ALLOW_HEADERS)


@router.api_route("/ingest", methods=["PUT", "PATCH", "DELETE"])
def ingest_method_not_allowed():
    return JSONResponse(
        status_code=405,
        content={"success": False, "error": "Method not allowed", "message": "Use POST"},
        headers={"Allow": "POST, OPTIONS"},
    )
