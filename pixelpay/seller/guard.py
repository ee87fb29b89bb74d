"""
Seller-side x402 payment guard

A request is either Unpaid (answer 402 with a requirement) or Paid (a
verified proof, the handler may run). Settlement happens only after the
handler succeeded.
"""

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

import structlog

from pixelpay.errors import PaymentVerificationFailed, UpstreamUnavailable
from pixelpay.payments.authority import PaymentAuthority
from pixelpay.payments.codec import decode_payload
from pixelpay.payments.models import (
    AcceptOption,
    PaymentPayload,
    PaymentRequirement,
    ResourceInfo,
    SettlementResult,
    X402_VERSION,
)
from pixelpay.payments.replay import UsedProofs

logger = structlog.get_logger()

# Tolerated drift between the buyer's clock and ours
CLOCK_SKEW_SECONDS = 60


@dataclass
class RoutePolicy:
    """Price and description of one protected route"""
    price_usd: str
    description: str
    mime_type: str = "application/json"


@dataclass
class Unpaid:
    requirement: PaymentRequirement
    reason: Optional[str] = None


@dataclass
class Paid:
    requirement: PaymentRequirement
    payload: PaymentPayload
    payer: Optional[str]


Decision = Union[Unpaid, Paid]


def usd_to_units(price_usd: str, decimals: int) -> str:
    """Convert a USD price string to the asset's smallest unit"""
    return str(int(Decimal(price_usd.lstrip("$")) * (Decimal(10) ** decimals)))


class PaymentGuard:
    """
    Decides whether a request to a protected route is paid.

    A proof that once produced a Paid decision is remembered and never
    grants access again, independently of the authority's own ledger. It is
    remembered until its authorization expires; authorizations valid for
    longer than max_timeout_seconds are refused.
    """

    def __init__(
        self,
        authority: PaymentAuthority,
        pay_to: str,
        network: str,
        asset: str,
        asset_decimals: int = 6,
        max_timeout_seconds: int = 300,
        token_name: str = "USDC",
        token_version: str = "2",
    ):
        self.authority = authority
        self.pay_to = pay_to
        self.network = network
        self.asset = asset
        self.asset_decimals = asset_decimals
        self.max_timeout_seconds = max_timeout_seconds
        self.token_name = token_name
        self.token_version = token_version
        self._consumed = UsedProofs()

    def requirement_for(self, policy: RoutePolicy, url: str, error: Optional[str] = None) -> PaymentRequirement:
        return PaymentRequirement(
            x402_version=X402_VERSION,
            error=error or "Payment required",
            resource=ResourceInfo(url=url, description=policy.description, mime_type=policy.mime_type),
            accepts=[
                AcceptOption(
                    scheme="exact",
                    network=self.network,
                    amount=usd_to_units(policy.price_usd, self.asset_decimals),
                    asset=self.asset,
                    pay_to=self.pay_to,
                    max_timeout_seconds=self.max_timeout_seconds,
                    extra={"name": self.token_name, "version": self.token_version},
                )
            ],
        )

    async def check(self, policy: RoutePolicy, url: str, header_value: Optional[str]) -> Decision:
        """
        Evaluate the payment header of a request.

        Raises:
            UpstreamUnavailable: the payment authority could not be reached
        """
        requirement = self.requirement_for(policy, url)
        if not header_value:
            return Unpaid(requirement)

        payload = decode_payload(header_value)
        if payload is None:
            return Unpaid(self.requirement_for(policy, url, "Invalid payment header"), "Invalid payment header")

        try:
            payer = await self._accept(payload, requirement, url)
        except PaymentVerificationFailed as e:
            return Unpaid(self.requirement_for(policy, url, e.reason), e.reason)

        return Paid(requirement=requirement, payload=payload, payer=payer)

    async def _accept(self, payload: PaymentPayload, requirement: PaymentRequirement, url: str) -> Optional[str]:
        """
        Verify a proof and mark it consumed.

        Returns:
            The payer address

        Raises:
            PaymentVerificationFailed: the proof was reused, too long-lived or rejected
        """
        proof_id = payload.proof_id
        if proof_id in self._consumed:
            logger.warning("payment_proof_reused", payer=payload.payer, url=url)
            raise PaymentVerificationFailed("Payment proof already used")

        latest = int(time.time()) + self.max_timeout_seconds + CLOCK_SKEW_SECONDS
        expires_at = payload.expires_at
        if expires_at is not None and expires_at > latest:
            logger.warning("payment_window_too_long", payer=payload.payer, valid_before=expires_at, url=url)
            raise PaymentVerificationFailed("Payment authorization outlives maxTimeoutSeconds")

        verification = await self.authority.verify(payload, requirement)
        if not verification.is_valid:
            reason = verification.invalid_reason or "Payment verification failed"
            logger.warning(
                "payment_verification_failed",
                payer=verification.payer,
                reason=reason,
                url=url,
            )
            raise PaymentVerificationFailed(reason)

        # Another request may have claimed the proof while we were verifying
        if proof_id in self._consumed:
            raise PaymentVerificationFailed("Payment proof already used")
        self._consumed.add(proof_id, expires_at if expires_at is not None else latest)

        logger.info("payment_verified", payer=verification.payer, url=url)
        return verification.payer or payload.payer

    async def settle(self, decision: Paid) -> SettlementResult:
        """Settle a Paid decision once its handler has succeeded"""
        try:
            result = await self.authority.settle(decision.payload, decision.requirement)
        except UpstreamUnavailable as e:
            result = SettlementResult(success=False, payer=decision.payer, error_reason=str(e))

        if result.success:
            logger.info(
                "payment_settled",
                payer=result.payer,
                transaction=result.transaction,
                network=result.network,
            )
        else:
            logger.warning("payment_settlement_failed", payer=decision.payer, reason=result.error_reason)
        return result
