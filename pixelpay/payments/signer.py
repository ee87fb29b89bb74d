"""
EIP-3009 authorization signing for the x402 "exact" scheme
"""

import secrets
import time
from typing import Any, Dict, Iterable

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from web3 import Web3
import structlog

from pixelpay.payments.models import AcceptOption, PaymentPayload, X402_VERSION

logger = structlog.get_logger()

EXACT_SCHEME = "exact"

# Clock-skew allowance applied to validAfter
VALID_AFTER_SKEW_SECONDS = 600

DEFAULT_TOKEN_NAME = "USDC"
DEFAULT_TOKEN_VERSION = "2"


def chain_id_for(network: str) -> int:
    """Extract the EVM chain id from a CAIP-2 identifier (eip155:<id>)"""
    namespace, _, reference = network.partition(":")
    if namespace != "eip155" or not reference.isdigit():
        raise ValueError(f"Unsupported network identifier: {network}")
    return int(reference)


def create_typed_data(
    chain_id: int,
    asset: str,
    from_address: str,
    to: str,
    value: str,
    valid_after: int,
    valid_before: int,
    nonce: str,
    token_name: str = DEFAULT_TOKEN_NAME,
    token_version: str = DEFAULT_TOKEN_VERSION,
) -> dict:
    """Create EIP-712 typed data for a TransferWithAuthorization"""
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "TransferWithAuthorization": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "validAfter", "type": "uint256"},
                {"name": "validBefore", "type": "uint256"},
                {"name": "nonce", "type": "bytes32"},
            ],
        },
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": token_name,
            "version": token_version,
            "chainId": chain_id,
            "verifyingContract": Web3.to_checksum_address(asset),
        },
        "message": {
            "from": Web3.to_checksum_address(from_address),
            "to": Web3.to_checksum_address(to),
            "value": int(value),
            "validAfter": int(valid_after),
            "validBefore": int(valid_before),
            "nonce": nonce if nonce.startswith("0x") else f"0x{nonce}",
        },
    }


def token_domain(option: AcceptOption) -> Dict[str, str]:
    extra: Dict[str, Any] = option.extra or {}
    return {
        "token_name": str(extra.get("name") or DEFAULT_TOKEN_NAME),
        "token_version": str(extra.get("version") or DEFAULT_TOKEN_VERSION),
    }


class ExactEvmSigner:
    """
    Signing capability for the x402 "exact" EVM scheme.

    Produces EIP-3009 transferWithAuthorization signatures for exactly the
    amount, asset and payee of an accepted payment option.
    """

    scheme = EXACT_SCHEME

    def __init__(self, account: LocalAccount, networks: Iterable[str]):
        self.account = account
        self.networks = set(networks)

    @classmethod
    def from_key(cls, private_key: str, networks: Iterable[str]) -> "ExactEvmSigner":
        return cls(Account.from_key(private_key), networks)

    @property
    def address(self) -> str:
        return self.account.address

    def supports(self, option: AcceptOption) -> bool:
        return option.scheme == self.scheme and option.network in self.networks

    def sign(self, option: AcceptOption) -> PaymentPayload:
        """
        Sign a payment authorization for one accepted option.

        Args:
            option: The payment option chosen from the 402 requirement

        Returns:
            PaymentPayload ready to submit with the retried request
        """
        now = int(time.time())
        valid_after = now - VALID_AFTER_SKEW_SECONDS
        valid_before = now + option.max_timeout_seconds
        nonce = "0x" + secrets.token_hex(32)

        typed_data = create_typed_data(
            chain_id=chain_id_for(option.network),
            asset=option.asset,
            from_address=self.address,
            to=option.pay_to,
            value=option.amount,
            valid_after=valid_after,
            valid_before=valid_before,
            nonce=nonce,
            **token_domain(option),
        )

        encoded = encode_typed_data(full_message=typed_data)
        signed = self.account.sign_message(encoded)

        logger.info(
            "payment_authorization_signed",
            payer=self.address,
            pay_to=option.pay_to,
            amount=option.amount,
            network=option.network,
        )

        signature = signed.signature.hex()
        return PaymentPayload(
            x402_version=X402_VERSION,
            accepted=option,
            payload={
                "signature": signature if signature.startswith("0x") else f"0x{signature}",
                "authorization": {
                    "from": self.address,
                    "to": option.pay_to,
                    "value": option.amount,
                    "validAfter": valid_after,
                    "validBefore": valid_before,
                    "nonce": nonce,
                },
            },
        )
