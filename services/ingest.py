from datetime import datetime
from typing import Any, Optional

from dateutil.parser import isoparse

from core.errors import IngestValidationError
from core.logger import get_logger

logger = get_logger(__name__)


def _is_number(value: Any) -> bool:
    # JSON booleans arrive as bool, which is an int subclass
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_checkout_event(data: Any) -> dict:
    """Check a web pixel checkout_completed payload; raises IngestValidationError."""
    if not isinstance(data, dict):
        raise IngestValidationError("Request body must be a JSON object")

    if not data.get("orderId"):
        raise IngestValidationError("Missing required field: orderId")

    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise IngestValidationError("Missing or invalid field: items")

    for item in items:
        if (
            not isinstance(item, dict)
            or not item.get("productId")
            or not item.get("variantId")
            or not _is_number(item.get("quantity"))
        ):
            raise IngestValidationError("Invalid item data: missing productId, variantId, or quantity")

    return data


def _event_time(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return isoparse(value)
    except ValueError:
        return None


def record_checkout_event(data: dict) -> dict:
    """
    Log a validated checkout event and return the acknowledgement body.

    Events are not persisted yet.
    """
    event_time = _event_time(data.get("timestamp"))
    logger.info(
        f"Checkout completed: order={data['orderId']} items={len(data['items'])} "
        f"total_quantity={data.get('totalQuantity')} "
        f"subtotal={data.get('subtotalPrice')} {data.get('currencyCode') or ''} "
        f"at={event_time.isoformat() if event_time else data.get('timestamp')}"
    )

    return {
        "success": True,
        "message": "Checkout event received",
        "orderId": data["orderId"],
        "itemsProcessed": len(data["items"]),
    }
