"""
Payment authorities: verify a payment proof against a requirement and settle it

LocalAuthority checks EIP-712 signatures in-process and settles with
EIP-3009 transferWithAuthorization (or simulates it in testnet mode).
FacilitatorAuthority delegates both steps to a remote x402 facilitator.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import httpx
import structlog
from eth_account import Account
from eth_account.messages import encode_typed_data
from pydantic import ValidationError
from web3 import Web3

from pixelpay.chain.client import ChainClient
from pixelpay.chain.contracts import ERC20_ABI
from pixelpay.errors import UpstreamUnavailable
from pixelpay.payments.models import (
    AcceptOption,
    Authorization,
    PaymentPayload,
    PaymentRequirement,
    SettlementResult,
    VerificationResult,
    X402_VERSION,
)
from pixelpay.payments.replay import UsedProofs
from pixelpay.payments.signer import chain_id_for, create_typed_data, token_domain

logger = structlog.get_logger()


def _mismatch_reason(payload: PaymentPayload, auth: Authorization, option: AcceptOption) -> Optional[str]:
    accepted = payload.accepted
    if accepted is not None:
        if accepted.scheme != option.scheme:
            return f"Unsupported scheme: {accepted.scheme}"
        if accepted.network != option.network:
            return f"Network mismatch: {accepted.network}"
        if accepted.asset.lower() != option.asset.lower():
            return "Asset mismatch"
        if accepted.pay_to.lower() != option.pay_to.lower():
            return "Recipient mismatch"

    if auth.to.lower() != option.pay_to.lower():
        return "Recipient mismatch"

    if not (auth.value.isascii() and auth.value.isdigit()) or int(auth.value) < int(option.amount):
        return f"Insufficient amount: got {auth.value}, expected {option.amount}"

    return None


def select_option(payload: PaymentPayload, accepts: List[AcceptOption]) -> Optional[AcceptOption]:
    """
    Find the accepted option a proof pays for.

    Matches scheme, network, asset and payee, and requires the authorized
    value to be at least the option's amount.
    """
    try:
        auth = payload.authorization()
    except ValidationError:
        return None

    for option in accepts:
        if _mismatch_reason(payload, auth, option) is None:
            return option
    return None


class PaymentAuthority(ABC):
    """Verifies and settles x402 payment proofs"""

    @abstractmethod
    async def verify(self, payload: PaymentPayload, requirement: PaymentRequirement) -> VerificationResult:
        ...

    @abstractmethod
    async def settle(self, payload: PaymentPayload, requirement: PaymentRequirement) -> SettlementResult:
        ...


class LocalAuthority(PaymentAuthority):
    """
    In-process verification and settlement.

    Supports two modes:
    - testnet_mode=True: simulate settlement (log but don't transfer)
    - testnet_mode=False: execute EIP-3009 transferWithAuthorization on-chain

    Each (payer, nonce) pair settles at most once.
    """

    def __init__(self, chain: Optional[ChainClient] = None, testnet_mode: bool = True):
        self.chain = chain
        self.testnet_mode = testnet_mode
        self._settled = UsedProofs()
        self._lock = asyncio.Lock()

        if testnet_mode:
            logger.info("payment_authority_testnet_mode", message="Payments will be simulated")
        else:
            logger.info("payment_authority_production_mode", message="Real USDC transfers enabled")

    async def verify(self, payload: PaymentPayload, requirement: PaymentRequirement) -> VerificationResult:
        try:
            auth = payload.authorization()
        except ValidationError:
            return VerificationResult(is_valid=False, invalid_reason="Malformed authorization")

        option = select_option(payload, requirement.accepts)
        if option is None:
            reason = _mismatch_reason(payload, auth, requirement.accepts[0])
            return VerificationResult(is_valid=False, invalid_reason=reason, payer=auth.from_address)

        now = int(time.time())
        if auth.valid_before <= now:
            return VerificationResult(
                is_valid=False, invalid_reason="Payment authorization expired", payer=auth.from_address
            )
        if auth.valid_after > now:
            return VerificationResult(
                is_valid=False, invalid_reason="Payment authorization not yet valid", payer=auth.from_address
            )

        try:
            typed_data = create_typed_data(
                chain_id=chain_id_for(option.network),
                asset=option.asset,
                from_address=auth.from_address,
                to=auth.to,
                value=auth.value,
                valid_after=auth.valid_after,
                valid_before=auth.valid_before,
                nonce=auth.nonce,
                **token_domain(option),
            )
            recovered = Account.recover_message(
                encode_typed_data(full_message=typed_data),
                signature=payload.signature,
            )
        except Exception as e:
            # Covers malformed addresses, nonces and signatures
            logger.warning("payment_signature_unreadable", error=str(e))
            return VerificationResult(is_valid=False, invalid_reason="Invalid signature", payer=auth.from_address)

        if recovered.lower() != auth.from_address.lower():
            return VerificationResult(is_valid=False, invalid_reason="Invalid signature", payer=auth.from_address)

        if payload.proof_id in self._settled:
            return VerificationResult(
                is_valid=False, invalid_reason="Payment already settled", payer=auth.from_address
            )

        return VerificationResult(is_valid=True, payer=auth.from_address)

    async def settle(self, payload: PaymentPayload, requirement: PaymentRequirement) -> SettlementResult:
        verification = await self.verify(payload, requirement)
        if not verification.is_valid:
            return SettlementResult(
                success=False,
                payer=verification.payer,
                error_reason=verification.invalid_reason,
            )

        option = select_option(payload, requirement.accepts)
        auth = payload.authorization()
        proof_id = payload.proof_id

        async with self._lock:
            if proof_id in self._settled:
                return SettlementResult(
                    success=False, payer=auth.from_address, error_reason="Payment already settled"
                )
            self._settled.add(proof_id, auth.valid_before)

        if self.testnet_mode:
            logger.info(
                "payment_settlement_simulated",
                from_address=auth.from_address,
                to_address=auth.to,
                amount=auth.value,
                mode="testnet",
            )
            return SettlementResult(
                success=True,
                transaction=f"0xsim_{auth.nonce.replace('0x', '')[:32]}",
                network=option.network,
                payer=auth.from_address,
                amount=auth.value,
            )

        try:
            tx_hash = await self._execute_transfer_with_authorization(option, auth, payload.signature)
        except Exception as e:
            # The proof was never used on-chain, so it may be presented again
            self._settled.discard(proof_id)
            logger.error("payment_settlement_failed", error=str(e), payer=auth.from_address)
            return SettlementResult(success=False, payer=auth.from_address, error_reason=str(e))

        return SettlementResult(
            success=True,
            transaction=tx_hash,
            network=option.network,
            payer=auth.from_address,
            amount=auth.value,
        )

    async def _execute_transfer_with_authorization(
        self,
        option: AcceptOption,
        auth: Authorization,
        signature: str,
    ) -> str:
        """
        Submit EIP-3009 transferWithAuthorization on-chain.

        The operator pays gas and moves USDC from the buyer's wallet using
        the buyer's signed authorization.
        """
        if self.chain is None:
            raise RuntimeError("Chain client required for on-chain settlement")

        sig_bytes = bytes.fromhex(signature.replace("0x", ""))
        if len(sig_bytes) != 65:
            raise ValueError(f"Invalid signature length: {len(sig_bytes)}")

        r = sig_bytes[:32]
        s = sig_bytes[32:64]
        v = sig_bytes[64]
        # Some wallets return 0/1 instead of 27/28
        if v < 27:
            v += 27

        nonce_bytes = bytes.fromhex(auth.nonce.replace("0x", "")).rjust(32, b"\x00")

        usdc = self.chain.contract(option.asset, ERC20_ABI)
        from_address = Web3.to_checksum_address(auth.from_address)

        nonce_used = await self.chain.call(usdc.functions.authorizationState(from_address, nonce_bytes))
        if nonce_used:
            raise RuntimeError("Authorization nonce already used on-chain")

        tx_hash, _ = await self.chain.transact(
            usdc.functions.transferWithAuthorization(
                from_address,
                Web3.to_checksum_address(auth.to),
                int(auth.value),
                auth.valid_after,
                auth.valid_before,
                nonce_bytes,
                v,
                r,
                s,
            )
        )

        logger.info(
            "payment_settled_onchain",
            tx_hash=tx_hash,
            from_address=auth.from_address,
            amount=auth.value,
        )
        return tx_hash


class FacilitatorAuthority(PaymentAuthority):
    """Delegates verification and settlement to a remote x402 facilitator"""

    def __init__(self, url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _post(self, path: str, payload: PaymentPayload, option: AcceptOption) -> Dict:
        body = {
            "x402Version": X402_VERSION,
            "paymentPayload": payload.model_dump(mode="json", by_alias=True, exclude_none=True),
            "paymentRequirements": option.model_dump(mode="json", by_alias=True, exclude_none=True),
        }
        try:
            if self._client is not None:
                response = await self._client.post(f"{self.url}{path}", json=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(f"{self.url}{path}", json=body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error("facilitator_request_failed", path=path, error=str(e))
            raise UpstreamUnavailable("facilitator", str(e)) from e

    async def verify(self, payload: PaymentPayload, requirement: PaymentRequirement) -> VerificationResult:
        option = select_option(payload, requirement.accepts)
        if option is None:
            return VerificationResult(
                is_valid=False, invalid_reason="No accepted payment option matches", payer=payload.payer
            )

        data = await self._post("/verify", payload, option)
        return VerificationResult(
            is_valid=bool(data.get("isValid")),
            invalid_reason=data.get("invalidReason"),
            payer=data.get("payer") or payload.payer,
        )

    async def settle(self, payload: PaymentPayload, requirement: PaymentRequirement) -> SettlementResult:
        option = select_option(payload, requirement.accepts)
        if option is None:
            return SettlementResult(
                success=False, payer=payload.payer, error_reason="No accepted payment option matches"
            )

        data = await self._post("/settle", payload, option)
        return SettlementResult(
            success=bool(data.get("success")),
            transaction=data.get("transaction"),
            network=data.get("network") or option.network,
            payer=data.get("payer") or payload.payer,
            amount=option.amount,
            error_reason=data.get("errorReason"),
        )
