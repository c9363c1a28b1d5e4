"""
Client for the external slip-verification API.

POST {VERIFIER_API_URL}/{amount} with the slip as a data URI; the API reads
the bank slip and echoes back what it found, including the transferred
amount.
"""

import asyncio
import base64
import logging
from decimal import Decimal
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from billing.core.config import settings
from billing.core.errors import VerificationError, VerificationTimeoutError
from billing.utils.money import format_amount

logger = logging.getLogger(__name__)


class SlipVerification(BaseModel):
    ref: str = ""
    date: str = ""
    sender_bank: str = ""
    sender_name: str = ""
    sender_id: str = ""
    receiver_bank: str = ""
    receiver_name: str = ""
    receiver_id: str = ""
    amount: Decimal


class SlipVerifierClient:

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.VERIFIER_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.VERIFIER_TIMEOUT_SECONDS
        self.max_retries = max(max_retries if max_retries is not None else settings.VERIFIER_MAX_RETRIES, 1)
        self.transport = transport

    async def verify_slip(self, amount: Decimal, image: bytes, content_type: str = "image/png") -> SlipVerification:
        """
        Verify a slip for amount.

        The whole call, retries included, is bounded by the client timeout;
        running out raises VerificationTimeoutError and never counts as a
        verified slip.
        """
        if not self.base_url:
            raise VerificationError("Slip verification is not configured")
        try:
            return await asyncio.wait_for(self._verify(amount, image, content_type), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Slip verification for %s timed out after %ss", amount, self.timeout)
            raise VerificationTimeoutError(f"Slip verification timed out after {self.timeout:g}s")

    async def _verify(self, amount: Decimal, image: bytes, content_type: str) -> SlipVerification:
        url = f"{self.base_url}/{format_amount(amount)}"
        payload = {"img": f"data:{content_type};base64,{base64.b64encode(image).decode('ascii')}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = None
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.post(url, json=payload)
                    break
                except httpx.TransportError as e:
                    logger.warning("Slip verification attempt %d/%d failed: %s", attempt, self.max_retries, e)
                    if attempt == self.max_retries:
                        raise VerificationError(
                            f"Slip verifier unreachable after {self.max_retries} attempts"
                        ) from e
                    await asyncio.sleep(2 ** attempt)

        if response.status_code != 200:
            raise VerificationError(f"Slip verifier returned status {response.status_code}")
        try:
            result = SlipVerification(**response.json()["data"])
        except (ValueError, KeyError, TypeError, PydanticValidationError) as e:
            raise VerificationError(f"Unreadable slip verifier response: {e}") from e

        logger.info("Slip verified for %s, ref %s", amount, result.ref)
        return result
