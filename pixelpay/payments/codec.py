"""
Header codecs for the x402 handshake

All header values are base64 of canonical JSON (sorted keys, compact
separators, camelCase field names, unset optionals omitted).
"""

import base64
import binascii
import json
from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel, ValidationError

from pixelpay.errors import MalformedRequirement
from pixelpay.payments.models import PaymentPayload, PaymentRequirement, SettlementResult

logger = structlog.get_logger()

PAYMENT_REQUIRED_HEADER = "PAYMENT-REQUIRED"
PAYMENT_SIGNATURE_HEADER = "PAYMENT-SIGNATURE"
LEGACY_PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "PAYMENT-RESPONSE"


def canonical_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def _encode_model(model: BaseModel) -> str:
    data = model.model_dump(mode="json", by_alias=True, exclude_none=True)
    return base64.b64encode(canonical_json(data).encode("utf-8")).decode("ascii")


def _decode_json(token: str) -> Any:
    raw = base64.b64decode(token, validate=True)
    return json.loads(raw.decode("utf-8"))


def encode_requirement(requirement: PaymentRequirement) -> str:
    """Encode PaymentRequirement as base64 for the PAYMENT-REQUIRED header"""
    return _encode_model(requirement)


def decode_requirement(token: Optional[str]) -> PaymentRequirement:
    """
    Decode a PAYMENT-REQUIRED header value.

    Raises:
        MalformedRequirement: token is empty, not base64, not JSON, or has no accepts
    """
    if not token:
        raise MalformedRequirement("Payment requirement header is empty")

    try:
        data = _decode_json(token.strip())
    except (binascii.Error, ValueError) as e:
        # json.JSONDecodeError and UnicodeDecodeError are both ValueErrors
        raise MalformedRequirement(f"Payment requirement is not valid base64 JSON: {e}") from e

    if not isinstance(data, dict) or not data.get("accepts"):
        raise MalformedRequirement("Payment requirement has no accepted payment options")

    try:
        return PaymentRequirement.model_validate(data)
    except ValidationError as e:
        raise MalformedRequirement(f"Invalid payment requirement: {e}") from e


def encode_payload(payload: PaymentPayload) -> str:
    """Encode PaymentPayload as base64 for the PAYMENT-SIGNATURE header"""
    return _encode_model(payload)


def decode_payload(token: Optional[str]) -> Optional[PaymentPayload]:
    """
    Decode a PAYMENT-SIGNATURE header value.

    Returns:
        PaymentPayload if successfully decoded, None otherwise
    """
    if not token:
        return None
    try:
        data = _decode_json(token.strip())
        return PaymentPayload.model_validate(data)
    except (binascii.Error, ValueError) as e:
        # ValidationError is a ValueError as well
        logger.warning("payment_header_decode_failed", error=str(e))
        return None


def encode_settlement(settlement: SettlementResult) -> str:
    """Encode a settlement result for the PAYMENT-RESPONSE header"""
    return _encode_model(settlement)


def decode_settlement(token: str) -> SettlementResult:
    return SettlementResult.model_validate(_decode_json(token))
