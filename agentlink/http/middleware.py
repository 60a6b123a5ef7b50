"""Composable request middleware for the transport layer.

Each middleware sees one request, may rewrite it, and decides whether and how
often to call the next handler. Retrying on payment challenges lives here, so
it stays independent of the executor's own retry policy.
"""
from __future__ import annotations

import abc
import base64
import json
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

import httpx

from agentlink.core.errors import PaymentRequiredError

logger = logging.getLogger(__name__)

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


class Middleware(abc.ABC):
    """One layer of the request pipeline."""

    @abc.abstractmethod
    async def attempt(self, request: httpx.Request, call_next: Handler) -> httpx.Response:
        """Handle ``request``, delegating to ``call_next`` as needed."""


def compose(send: Handler, middlewares: Sequence[Middleware]) -> Handler:
    """Wrap ``send`` so the first middleware in the sequence runs outermost."""
    handler = send
    for middleware in reversed(middlewares):
        handler = partial(middleware.attempt, call_next=handler)
    return handler


class ApiKeyMiddleware(Middleware):
    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    async def attempt(self, request: httpx.Request, call_next: Handler) -> httpx.Response:
        request.headers.setdefault("X-Api-Key", self._api_key)
        return await call_next(request)


class PaymentSigner(Protocol):
    """Produces a proof-of-payment header value for a 402 challenge."""

    async def sign(self, requirements: Dict[str, Any]) -> str:
        ...


def decode_payment_response(header: str) -> Dict[str, Any]:
    """Decode a base64 JSON settlement receipt."""
    return json.loads(base64.b64decode(header).decode("utf-8"))


class PaymentChallengeMiddleware(Middleware):
    """Answer HTTP 402 challenges with a signed payment and retry once.

    The last proof and the last settlement receipt are kept on the instance,
    which belongs to a single client session.
    """

    def __init__(self, signer: Optional[PaymentSigner]) -> None:
        self._signer = signer
        self.last_proof: Optional[str] = None
        self.last_receipt: Optional[Dict[str, Any]] = None

    async def attempt(self, request: httpx.Request, call_next: Handler) -> httpx.Response:
        response = await call_next(request)
        if response.status_code != 402:
            self._record_receipt(response)
            return response

        body = (await response.aread()).decode("utf-8", errors="replace")
        await response.aclose()
        if self._signer is None:
            raise PaymentRequiredError(f"Payment required for {request.url}", body)

        requirements = self._select_requirements(body)
        logger.info("Payment challenge from %s, signing %s", request.url, requirements.get("scheme", "payment"))
        proof = await self._signer.sign(requirements)
        self.last_proof = proof

        request.headers[PAYMENT_HEADER] = proof
        retried = await call_next(request)
        if retried.status_code == 402:
            retry_body = (await retried.aread()).decode("utf-8", errors="replace")
            await retried.aclose()
            raise PaymentRequiredError(f"Payment rejected by {request.url}", retry_body)
        self._record_receipt(retried)
        return retried

    @staticmethod
    def _select_requirements(body: str) -> Dict[str, Any]:
        try:
            challenge = json.loads(body)
        except json.JSONDecodeError:
            raise PaymentRequiredError("Payment challenge is not valid JSON", body) from None
        accepts: List[Dict[str, Any]] = []
        if isinstance(challenge, dict):
            accepts = challenge.get("accepts") or []
        if not accepts:
            raise PaymentRequiredError("Payment challenge lists no accepted requirements", body)
        return accepts[0]

    def _record_receipt(self, response: httpx.Response) -> None:
        header = response.headers.get(PAYMENT_RESPONSE_HEADER)
        if not header:
            return
        try:
            self.last_receipt = decode_payment_response(header)
        except ValueError as exc:
            logger.warning("Failed to decode %s: %s", PAYMENT_RESPONSE_HEADER, exc)
            return
        logger.info("Payment settled: %s", self.last_receipt)
