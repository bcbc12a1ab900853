"""LNbits payment gateway adapter.

Invoices are created with ``POST /api/v1/payments`` and ``out: false``.
LNbits calls the webhook once the invoice is paid.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from app.core.config import GATEWAY_TIMEOUT_SECONDS, LNBITS_API_HOST

from .exceptions import GatewayError

log = logging.getLogger(__name__)

PAYMENTS_PATH = "/api/v1/payments"
API_KEY_HEADER = "X-Api-Key"


@dataclass
class Invoice:
    payment_hash: str
    payment_request: str


class LNbitsGateway:
    """Client for the LNbits payments API.

    Attributes:
        api_host: Host (optionally host:port) of the LNbits instance.
        api_key: Invoice/read key of the receiving wallet.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        api_host: str = LNBITS_API_HOST,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key
        self.api_host = api_host
        self.timeout = timeout

    @property
    def payments_url(self) -> str:
        return f"https://{self.api_host}{PAYMENTS_PATH}"

    async def _post(self, body: Dict[str, Any]) -> httpx.Response:
        headers = {API_KEY_HEADER: self.api_key, "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(self.payments_url, json=body, headers=headers)
        except httpx.TimeoutException:
            raise GatewayError(f"payment gateway timeout after {self.timeout}s")
        except httpx.RequestError as e:
            raise GatewayError(f"payment gateway unreachable: {e}")

    async def create_invoice(
        self,
        amount: int,
        memo: str,
        webhook: Optional[str] = None,
    ) -> Invoice:
        """Request an incoming invoice.

        Raises:
            GatewayError: Network failure, a status other than 201, or a
                response missing payment_hash/payment_request.
        """
        body: Dict[str, Any] = {"out": False, "amount": amount, "memo": memo}
        if webhook:
            body["webhook"] = webhook

        response = await self._post(body)
        if response.status_code != 201:
            raise GatewayError(f"invoice request failed: HTTP {response.status_code}")

        try:
            data = response.json()
            invoice = Invoice(
                payment_hash=data["payment_hash"],
                payment_request=data["payment_request"],
            )
        except (ValueError, KeyError, TypeError) as e:
            raise GatewayError(f"invalid invoice response: {e}")

        log.info(f"Created invoice {invoice.payment_hash[:8]} for {amount} sats")
        return invoice

    async def validate_payment_request(self, payment_request: str) -> bool:
        """Check that LNbits recognizes a stored payment request.

        Returns False on any failure. This does not prove the invoice belongs
        to a particular registration, only that the gateway accepts it.
        """
        try:
            response = await self._post({"data": payment_request})
        except GatewayError as e:
            log.warning(f"Payment request validation failed: {e}")
            return False

        if response.status_code != 200:
            log.info(f"Payment request rejected by gateway: HTTP {response.status_code}")
            return False
        return len(response.content) > 0
