"""
Unit tests for x402 header codecs
"""

import base64
import json

import pytest

from pixelpay.errors import MalformedRequirement
from pixelpay.payments.codec import (
    decode_payload,
    decode_requirement,
    decode_settlement,
    encode_payload,
    encode_requirement,
    encode_settlement,
)
from pixelpay.payments.models import AcceptOption, PaymentPayload, SettlementResult
from tests.factories import AcceptOptionFactory, PaymentRequirementFactory


def _raw(token: str) -> dict:
    return json.loads(base64.b64decode(token))


class TestRequirementCodec:
    """PAYMENT-REQUIRED header encoding"""

    def test_round_trip(self):
        requirement = PaymentRequirementFactory(
            accepts=[AcceptOptionFactory(), AcceptOptionFactory(amount="25000", extra=None)]
        )

        assert decode_requirement(encode_requirement(requirement)) == requirement

    def test_encoding_is_canonical_camel_case_json(self):
        requirement = PaymentRequirementFactory(accepts=[AcceptOptionFactory(extra=None)])
        token = encode_requirement(requirement)

        text = base64.b64decode(token).decode()
        data = json.loads(text)
        option = data["accepts"][0]

        assert data["x402Version"] == 2
        assert "payTo" in option and "maxTimeoutSeconds" in option
        assert "extra" not in option
        assert text == json.dumps(data, sort_keys=True, separators=(",", ":"))
        assert list(data.keys()) == sorted(data.keys())

    def test_same_requirement_encodes_identically(self):
        requirement = PaymentRequirementFactory()
        assert encode_requirement(requirement) == encode_requirement(requirement.model_copy())

    def test_decode_rejects_invalid_base64(self):
        with pytest.raises(MalformedRequirement):
            decode_requirement("not base64!!")

    def test_decode_rejects_non_json(self):
        with pytest.raises(MalformedRequirement):
            decode_requirement(base64.b64encode(b"hello").decode())

    def test_decode_rejects_missing_accepts(self):
        token = base64.b64encode(json.dumps({"x402Version": 2}).encode()).decode()
        with pytest.raises(MalformedRequirement):
            decode_requirement(token)

    def test_decode_rejects_empty_accepts(self):
        token = base64.b64encode(json.dumps({"x402Version": 2, "accepts": []}).encode()).decode()
        with pytest.raises(MalformedRequirement):
            decode_requirement(token)

    def test_decode_rejects_empty_token(self):
        with pytest.raises(MalformedRequirement):
            decode_requirement(None)

    def test_amount_must_be_integer_string(self):
        with pytest.raises(ValueError):
            AcceptOption(network="eip155:10143", amount="0.01", asset="0x1", pay_to="0x2")


class TestPayloadCodec:
    """PAYMENT-SIGNATURE header encoding"""

    def test_payload_uses_protocol_field_names(self):
        payload = PaymentPayload(
            accepted=AcceptOptionFactory(),
            payload={
                "signature": "0xabc123",
                "authorization": {
                    "from": "0x1111111111111111111111111111111111111111",
                    "to": "0x2222222222222222222222222222222222222222",
                    "value": "10000",
                    "validAfter": 0,
                    "validBefore": 9999999999,
                    "nonce": "0xDEF",
                },
            },
        )

        data = _raw(encode_payload(payload))
        assert data["accepted"]["payTo"] == payload.accepted.pay_to
        assert data["payload"]["authorization"]["from"] == "0x1111111111111111111111111111111111111111"

        decoded = decode_payload(encode_payload(payload))
        assert decoded.payer == "0x1111111111111111111111111111111111111111"
        assert decoded.proof_id == "0x1111111111111111111111111111111111111111:0xdef"
        assert decoded.authorization().valid_before == 9999999999

    def test_garbage_payload_decodes_to_none(self):
        assert decode_payload("%%%") is None
        assert decode_payload(base64.b64encode(b"[1, 2]").decode()) is None
        assert decode_payload("") is None


class TestSettlementCodec:
    def test_settlement_header(self):
        settlement = SettlementResult(success=True, transaction="0xsim_1", network="eip155:10143", payer="0xabc")

        decoded = decode_settlement(encode_settlement(settlement))

        assert decoded.success is True
        assert decoded.transaction == "0xsim_1"
        assert "error_reason" not in _raw(encode_settlement(settlement))
