"""TaxJar client used for fan checkout tax (VAT / sales tax)."""
import time
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
import structlog

from creator_payouts.config import Settings, get_settings
from creator_payouts.core.errors import TaxServiceError
from creator_payouts.core.fee_calculator import TaxOrder
from creator_payouts.core.fee_schedule import to_minor_units

logger = structlog.get_logger(__name__)

TAXES_PATH = "/v2/taxes"


class TaxJarClient:
    """Computes the tax to collect for a checkout order."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.settings.taxjar_api_url,
            headers={"Authorization": f"Bearer {self.settings.taxjar_api_key}"},
            timeout=self.settings.tax_request_timeout,
        )

    @staticmethod
    def build_payload(order: TaxOrder) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "to_country": order.to_country,
            "amount": str(order.amount),
            "shipping": str(order.shipping),
        }
        optional = {
            "to_state": order.to_state,
            "to_zip": order.to_zip,
            "to_city": order.to_city,
            "to_street": order.to_street,
        }
        payload.update({k: v for k, v in optional.items() if v})
        return payload

    async def compute_tax(self, order: TaxOrder) -> int:
        """
        Ask TaxJar how much tax to collect.

        Returns:
            int: Tax in cents, rounded half-up

        Raises:
            TaxServiceError: On transport failure, non-2xx or a malformed body
        """
        start = time.time()
        try:
            response = await self.http_client.post(TAXES_PATH, json=self.build_payload(order))
        except httpx.HTTPError as e:
            logger.error("tax_request_failed", error=str(e), to_country=order.to_country)
            raise TaxServiceError(str(e)) from e

        logger.debug(
            "tax_response_received",
            status_code=response.status_code,
            duration_seconds=time.time() - start,
        )

        if not response.is_success:
            try:
                detail = response.json().get("detail") or response.text
            except ValueError:
                detail = response.text
            raise TaxServiceError(str(detail), status_code=response.status_code)

        try:
            amount = response.json()["tax"]["amount_to_collect"]
        except (ValueError, KeyError, TypeError) as e:
            raise TaxServiceError(
                "Malformed tax response", status_code=response.status_code
            ) from e

        return to_minor_units(Decimal(str(amount)))

    async def close(self) -> None:
        await self.http_client.aclose()
