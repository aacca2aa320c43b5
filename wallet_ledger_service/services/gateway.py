"""Payment gateway adapter (Paystack).

A thin pass-through: initializes and verifies charges, converts between ledger
units and the gateway's minor units, and checks webhook signatures. It never
touches the ledger itself.
"""

import hashlib
import hmac
import logging
from decimal import Decimal, InvalidOperation as DecimalException
from typing import Any, Optional, Protocol, Union

import httpx

from wallet_ledger_service.core.config import settings
from wallet_ledger_service.core.exceptions import InvalidOperation, UpstreamFailure
from wallet_ledger_service.services.ledger import MAX_AMOUNT, to_money

logger = logging.getLogger(__name__)

MINOR_UNITS_PER_MAJOR = Decimal(100)

SIGNATURE_HEADER = "x-paystack-signature"

SUCCESS_STATUS = "success"


def to_minor_units(amount: Decimal) -> int:
    """Convert a ledger amount (e.g. naira) to gateway minor units (e.g. kobo)."""
    return int((Decimal(amount) * MINOR_UNITS_PER_MAJOR).to_integral_value())


def to_major_units(amount: Union[int, str, Decimal]) -> Decimal:
    """Convert gateway minor units back to a 2-place ledger amount.

    Raises:
        InvalidOperation: If the amount is not a whole number of minor units
            or does not fit the ledger
    """
    try:
        minor = Decimal(amount)
    except (DecimalException, TypeError, ValueError):
        raise InvalidOperation(f"Invalid gateway amount: {amount!r}")
    if not minor.is_finite() or minor != minor.to_integral_value():
        raise InvalidOperation(f"Invalid gateway amount: {amount!r}")
    if minor.copy_abs() >= MAX_AMOUNT * MINOR_UNITS_PER_MAJOR:
        raise InvalidOperation(f"Gateway amount out of range: {amount!r}")
    return to_money(minor / MINOR_UNITS_PER_MAJOR)


def compute_signature(body: bytes, secret: str) -> str:
    """HMAC-SHA512 of the raw body, hex encoded."""
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Constant-time check of a header-supplied signature against the raw body."""
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(body, secret), signature)


class PaymentGateway(Protocol):
    """Interface the deposit engine needs from a payment processor."""

    async def initialize_charge(
        self, email: str, amount: Decimal, reference: str
    ) -> dict[str, Any]: ...

    async def verify_charge(self, reference: str) -> dict[str, Any]: ...


class PaystackGateway:
    """Paystack REST client.

    Args:
        secret_key: Paystack secret key
        base_url: Paystack API base URL
        timeout: Request timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        secret_key: str = settings.PAYSTACK_SECRET_KEY,
        base_url: str = settings.PAYSTACK_BASE_URL,
        timeout: float = settings.PAYSTACK_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Make a request and return the response's ``data`` object.

        Raises:
            UpstreamFailure: On network errors, error statuses or malformed bodies
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.error("Paystack %s %s failed: %s", method, path, exc)
            raise UpstreamFailure("Payment gateway request failed", details={"error": str(exc)})

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        if not isinstance(body, dict):
            body = {"message": response.text}

        if response.status_code >= 400 or not body.get("status"):
            logger.error("Paystack %s %s returned %s", method, path, response.status_code)
            raise UpstreamFailure(
                body.get("message") or "Payment gateway returned an error",
                details={"gateway_status": response.status_code, "gateway_response": body},
                status_code=response.status_code if response.status_code >= 400 else None,
            )

        return body.get("data") or {}

    async def initialize_charge(self, email: str, amount: Decimal, reference: str) -> dict[str, Any]:
        """Start a hosted checkout for ``amount`` (ledger units).

        Returns:
            The gateway's data, including ``authorization_url`` and ``access_code``
        """
        return await self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": to_minor_units(amount),
                "reference": reference,
            },
        )

    async def verify_charge(self, reference: str) -> dict[str, Any]:
        """Fetch the gateway's view of a charge.

        Returns:
            The gateway's data, including ``status`` and ``amount`` (minor units)
        """
        return await self._request("GET", f"/transaction/verify/{reference}")


async def get_payment_gateway():
    """Dependency that provides a payment gateway client."""
    gateway = PaystackGateway()
    try:
        yield gateway
    finally:
        await gateway.aclose()
