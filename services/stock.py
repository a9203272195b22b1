import logging
from typing import Any, Dict, Optional

import requests
from fastapi import Depends

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class StockAdjustmentError(Exception):
    """The stock service refused or failed a decrement."""

    def __init__(self, message: str, product_id: int, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.product_id = product_id
        self.status_code = status_code


class StockClient:
    """Client for the product stock endpoint (``PUT <url>?id=<product_id>``)."""

    def __init__(self, base_url: str, timeout: float = 10):
        self.base_url = base_url
        self.timeout = timeout

    def adjust(
        self,
        product_id: int,
        color: Optional[str],
        size: Optional[str],
        quantity: int,
        authorization: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Decrement ``quantity`` units of one variant, forwarding the caller's credential."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": authorization or "",
        }
        payload = {"color": color, "size": size, "quantity": quantity}
        resp = requests.put(
            self.base_url,
            params={"id": product_id},
            json=payload,
            headers=headers,
            timeout=self.timeout,
        )
        body = _json_or_empty(resp)
        if not resp.ok:
            message = body.get("message") or f"Failed to update stock for product {product_id}"
            logger.warning("Stock update rejected for product %s (%s): %s", product_id, resp.status_code, message)
            raise StockAdjustmentError(message, product_id, resp.status_code)
        logger.info("Stock reduced for product %s (%s/%s) by %s", product_id, color, size, quantity)
        return body


def _json_or_empty(resp: requests.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def get_stock_client(cfg: Settings = Depends(get_settings)) -> StockClient:
    return StockClient(cfg.STOCK_API_URL, timeout=cfg.STOCK_API_TIMEOUT)
