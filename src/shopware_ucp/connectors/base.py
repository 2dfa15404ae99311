"""Base classes for processor connectors.

A connector is the transport strategy a payment handler is constructed with:
either a real HTTP client for the processor's API or a deterministic
in-memory double. Handlers never branch on live/mock themselves.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import httpx

from ..exceptions import ConnectorError
from ..logging import log_request, log_response

logger = logging.getLogger(__name__)


class PaymentOutcome(str, Enum):
    """Processor status classified into the broker's outcome model."""

    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(slots=True)
class ProcessorPayment:
    """A payment as the processor reports it.

    ``checkout_url`` is set when the processor needs the customer to be
    redirected (bank page, 3-D Secure challenge).
    """

    id: str
    status: str
    checkout_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(slots=True)
class CardCharge:
    """A one-shot charge of a tokenized card or wallet credential."""

    reference: str
    amount: int
    currency: str
    token: str
    description: str
    return_url: str
    webhook_url: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


class ProcessorConnector(ABC):
    """Base class for every processor connector."""

    processor: str = "processor"
    status_outcomes: Mapping[str, PaymentOutcome] = {}

    def outcome_for(self, status: str) -> PaymentOutcome:
        """Classify a raw processor status; unknown statuses stay pending."""
        return self.status_outcomes.get(status, PaymentOutcome.PENDING)

    @property
    def is_live(self) -> bool:
        return True

    @abstractmethod
    async def get_payment(self, payment_id: str) -> ProcessorPayment:
        """
        Fetch the current processor-side state of a payment.

        Raises:
            ConnectorError: On network, protocol or response-shape faults
        """
        pass

    async def ping(self) -> bool:
        """Check that the processor accepts our credentials."""
        return True

    async def close(self) -> None:
        """Release transport resources."""
        return None


class CardConnector(ProcessorConnector):
    """Connector able to charge a tokenized card credential."""

    @abstractmethod
    async def charge(self, charge: CardCharge) -> ProcessorPayment:
        """
        Create and confirm a card payment.

        Raises:
            ConnectorError: On network, protocol or response-shape faults
        """
        pass


class HttpConnector:
    """Mixin holding an httpx client with bearer-token authentication."""

    processor: str = "processor"

    def __init__(
        self,
        api_key: str,
        api_base: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.api_base,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Perform one API call and return the decoded JSON object.

        Every failure mode is raised as ``ConnectorError``; the response body
        is logged (masked) but never put into the error message.
        """
        log_request(logger, method, f"{self.api_base}{path}", body=json or data)
        started = time.monotonic()
        try:
            response = await self._client.request(method, path, json=json, data=data)
        except httpx.TimeoutException as e:
            raise ConnectorError(f"{self.processor} request timed out", self.processor) from e
        except httpx.HTTPError as e:
            raise ConnectorError(
                f"{self.processor} request failed: {type(e).__name__}", self.processor
            ) from e
        duration_ms = (time.monotonic() - started) * 1000

        try:
            body = response.json()
        except ValueError:
            body = None
        log_response(logger, response.status_code, body, duration_ms)

        if response.is_error:
            raise ConnectorError(
                f"{self.processor} API error: {response.status_code}",
                self.processor,
                status_code=response.status_code,
            )
        if not isinstance(body, dict):
            raise ConnectorError(
                f"{self.processor} returned a malformed response body",
                self.processor,
                status_code=response.status_code,
            )
        return body

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()


def require_field(body: Dict[str, Any], key: str, processor: str) -> Any:
    value = body.get(key)
    if value in (None, ""):
        raise ConnectorError(f"{processor} response missing '{key}'", processor)
    return value


__all__ = [
    "PaymentOutcome",
    "ProcessorPayment",
    "CardCharge",
    "ProcessorConnector",
    "CardConnector",
    "HttpConnector",
    "require_field",
]
