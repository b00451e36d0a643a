"""Midtrans Snap / Core API client.

Only the two calls the pipeline needs: create a QRIS transaction and read a
transaction's status (the poll fallback for lost webhooks).
"""
import hashlib
import hmac
import logging
import re
import time
from typing import Any, Dict, Optional
import httpx
from app.core.config import Settings
from app.core.errors import GatewayUnavailable

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "MID"
_REFERENCE_RE = re.compile(r"^MID-\d+-(\d+)$")

def build_reference(order_id: int, now: Optional[float] = None) -> str:
    """Gateway-side order id. A new one per initiation since Midtrans rejects reuse."""
    return f"{REFERENCE_PREFIX}-{int(now if now is not None else time.time())}-{order_id}"

def parse_reference(reference: str) -> Optional[int]:
    """Map a gateway order id back to our order id; None when it isn't ours."""
    if not reference:
        return None
    m = _REFERENCE_RE.match(reference.strip())
    if m:
        return int(m.group(1))
    return None

def signature_for(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}".encode("utf-8")
    return hashlib.sha512(raw).hexdigest()

def verify_signature(payload: Dict[str, Any], server_key: str) -> bool:
    given = str(payload.get("signature_key") or "")
    expected = signature_for(
        str(payload.get("order_id", "")),
        str(payload.get("status_code", "")),
        str(payload.get("gross_amount", "")),
        server_key,
    )
    return hmac.compare_digest(given, expected)

class MidtransGateway:
    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.settings.GATEWAY_TIMEOUT_SECONDS,
            auth=(self.settings.MIDTRANS_SERVER_KEY, ""),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            transport=self.transport,
        )

    def _request(self, method: str, url: str, json: Optional[dict] = None) -> dict:
        attempts = max(1, self.settings.GATEWAY_MAX_ATTEMPTS)
        last_error = "no attempt made"
        for attempt in range(1, attempts + 1):
            try:
                with self._client() as client:
                    resp = client.request(method, url, json=json)
            except httpx.RequestError as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning("Gateway %s %s failed (attempt %d/%d): %s", method, url, attempt, attempts, last_error)
                continue
            if resp.status_code >= 500:
                last_error = f"HTTP {resp.status_code}"
                logger.warning("Gateway %s %s returned %s (attempt %d/%d)", method, url, resp.status_code, attempt, attempts)
                continue
            if resp.status_code >= 400:
                logger.error("Gateway rejected %s %s: %s %s", method, url, resp.status_code, resp.text)
                raise GatewayUnavailable(f"Payment gateway rejected the request ({resp.status_code})")
            try:
                return resp.json()
            except ValueError:
                raise GatewayUnavailable("Payment gateway returned an unreadable response")
        raise GatewayUnavailable(f"Payment gateway unavailable ({last_error})")

    def create_transaction(self, params: dict) -> dict:
        url = f"{self.settings.snap_base_url}/snap/v1/transactions"
        data = self._request("POST", url, json=params)
        if not data.get("token"):
            raise GatewayUnavailable("Payment gateway response carried no token")
        return data

    def get_status(self, reference: str) -> dict:
        url = f"{self.settings.api_base_url}/v2/{reference}/status"
        return self._request("GET", url)
