import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
import structlog

from pixelpay.chain.client import ChainClient
from pixelpay.chain.contracts import ProvenanceMinter, RewardToken
from pixelpay.config import SellerConfig
from pixelpay.database.base import CatalogStore
from pixelpay.database.settings import SettingsStore
from pixelpay.errors import UpstreamUnavailable
from pixelpay.payments.codec import (
    LEGACY_PAYMENT_HEADER,
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_SIGNATURE_HEADER,
    encode_requirement,
)
from pixelpay.payments.models import PaymentRequirement
from pixelpay.seller.generator import ImageGenerator
from pixelpay.seller.guard import Paid, PaymentGuard, RoutePolicy, Unpaid
from pixelpay.seller.side_effects import SaleSideEffects

logger = structlog.get_logger()

GENERATE_ROUTE = "POST /generate"
BUY_ROUTE = "GET /api/gallery/buy"


def get_client_key(request: Request) -> str:
    """Get client identifier for rate limiting - uses IP address"""
    return get_remote_address(request)


limiter = Limiter(key_func=get_client_key)


@dataclass
class SellerServices:
    """Everything the seller routes need, built once per app"""
    config: SellerConfig
    db: CatalogStore
    settings: SettingsStore
    chain: ChainClient
    guard: PaymentGuard
    side_effects: SaleSideEffects
    generator: ImageGenerator
    minter: ProvenanceMinter
    reward_token: RewardToken
    policies: Dict[str, RoutePolicy]
    _locks: Dict[str, asyncio.Lock] = field(default_factory=dict)
    _lock_users: Dict[str, int] = field(default_factory=dict)

    @asynccontextmanager
    async def resource_lock(self, resource_id: str) -> AsyncIterator[None]:
        """
        Serializes purchases of one resource.

        A lock exists only while some request holds or awaits it.
        """
        lock = self._locks.get(resource_id)
        if lock is None:
            lock = self._locks[resource_id] = asyncio.Lock()
        self._lock_users[resource_id] = self._lock_users.get(resource_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[resource_id] -= 1
            if not self._lock_users[resource_id]:
                del self._lock_users[resource_id]
                del self._locks[resource_id]


def get_services(request: Request) -> SellerServices:
    return request.app.state.services


class PaymentRequired(Exception):
    """Raised from a protected route to answer with HTTP 402"""

    def __init__(self, requirement: PaymentRequirement):
        super().__init__(requirement.error or "Payment required")
        self.requirement = requirement


async def payment_required_handler(request: Request, exc: PaymentRequired) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content=exc.requirement.model_dump(mode="json", by_alias=True, exclude_none=True),
        headers={PAYMENT_REQUIRED_HEADER: encode_requirement(exc.requirement)},
    )


def require_payment(route: str):
    """
    FastAPI dependency gating a route behind the x402 handshake.

    Returns the Paid decision; the route settles it after its own work.
    """

    async def dependency(request: Request) -> Paid:
        services = get_services(request)
        policy = services.policies[route]
        header = request.headers.get(PAYMENT_SIGNATURE_HEADER) or request.headers.get(LEGACY_PAYMENT_HEADER)

        try:
            decision = await services.guard.check(policy, str(request.url), header)
        except UpstreamUnavailable as e:
            logger.error("payment_authority_unavailable", route=route, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Payment verification unavailable",
            )

        if isinstance(decision, Unpaid):
            raise PaymentRequired(decision.requirement)
        return decision

    return dependency


async def settle_or_requote(request: Request, route: str, paid: Paid):
    """Settle a Paid decision; a failed settlement answers with a fresh 402"""
    services = get_services(request)
    settlement = await services.guard.settle(paid)
    if not settlement.success:
        raise PaymentRequired(
            services.guard.requirement_for(
                services.policies[route],
                str(request.url),
                error=settlement.error_reason or "Payment settlement failed",
            )
        )
    return settlement
