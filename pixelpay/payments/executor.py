"""
Client side of the x402 handshake

PaymentExecutor sends a request, answers a 402 with a signed
authorization, and retries the request exactly once.
"""

from typing import Optional

import httpx
import structlog

from pixelpay.errors import (
    MalformedRequirement,
    NoMatchingScheme,
    PaymentFailed,
    PaymentInfoUnavailable,
    UnexpectedResponse,
    UpstreamUnavailable,
)
from pixelpay.payments.codec import (
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_RESPONSE_HEADER,
    PAYMENT_SIGNATURE_HEADER,
    decode_requirement,
    decode_settlement,
    encode_payload,
)
from pixelpay.payments.models import AcceptOption, PaymentRequirement, SettlementResult
from pixelpay.payments.signer import ExactEvmSigner

logger = structlog.get_logger()


def settlement_from(response: httpx.Response) -> Optional[SettlementResult]:
    """Read the PAYMENT-RESPONSE header of a paid response, if present"""
    token = response.headers.get(PAYMENT_RESPONSE_HEADER)
    if not token:
        return None
    try:
        return decode_settlement(token)
    except ValueError as e:
        logger.warning("payment_response_decode_failed", error=str(e))
        return None


def _error_text(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        return str(data.get("error") or data.get("detail") or data)
    return str(data)


class PaymentExecutor:
    """
    Executes HTTP requests against x402-protected endpoints.

    Usage:
        async with httpx.AsyncClient(timeout=30) as client:
            executor = PaymentExecutor(signer, client)
            response = await executor.call(client.build_request("GET", url))
    """

    def __init__(self, signer: ExactEvmSigner, client: httpx.AsyncClient):
        self.signer = signer
        self.client = client

    async def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self.client.send(request)
        except httpx.TransportError as e:
            # Timeouts are TransportErrors too
            logger.error("payment_request_transport_error", url=str(request.url), error=str(e))
            raise UpstreamUnavailable(str(request.url), str(e)) from e

    def _choose(self, requirement: PaymentRequirement) -> AcceptOption:
        for option in requirement.accepts:
            if self.signer.supports(option):
                return option
        offered = ", ".join(f"{o.scheme}/{o.network}" for o in requirement.accepts)
        raise NoMatchingScheme(f"No signer for offered payment options: {offered}")

    def _check(self, response: httpx.Response) -> httpx.Response:
        if response.is_success:
            return response
        raise UnexpectedResponse(response.status_code, _error_text(response))

    async def call(self, request: httpx.Request) -> httpx.Response:
        """
        Send ``request``, paying for it if the server demands payment.

        Returns:
            The successful (2xx) response

        Raises:
            PaymentInfoUnavailable: 402 without a usable PAYMENT-REQUIRED header
            NoMatchingScheme: no offered option can be signed
            PaymentFailed: the signed retry was answered with another 402
            UnexpectedResponse: any other non-2xx answer
            UpstreamUnavailable: transport failure or timeout
        """
        response = await self._send(request)
        if response.status_code != 402:
            return self._check(response)

        try:
            requirement = decode_requirement(response.headers.get(PAYMENT_REQUIRED_HEADER))
        except MalformedRequirement as e:
            raise PaymentInfoUnavailable(str(e)) from e

        option = self._choose(requirement)
        payload = self.signer.sign(option)

        logger.info(
            "payment_required_retrying",
            url=str(request.url),
            amount=option.amount,
            network=option.network,
            pay_to=option.pay_to,
        )

        headers = dict(request.headers)
        headers[PAYMENT_SIGNATURE_HEADER] = encode_payload(payload)
        retry = httpx.Request(request.method, request.url, headers=headers, content=request.content)

        response = await self._send(retry)
        if response.status_code == 402:
            reason = _error_text(response)
            logger.warning("payment_failed", url=str(request.url), reason=reason)
            raise PaymentFailed(reason or "Payment rejected")

        response = self._check(response)

        settlement = settlement_from(response)
        if settlement is not None:
            logger.info(
                "payment_settled",
                transaction=settlement.transaction,
                network=settlement.network,
                payer=settlement.payer,
            )
        return response
