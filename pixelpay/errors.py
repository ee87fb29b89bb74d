"""
PixelPay error taxonomy
"""

from typing import Optional


class PixelPayError(Exception):
    """Base class for all PixelPay errors"""


class MalformedRequirement(PixelPayError):
    """A PAYMENT-REQUIRED header could not be decoded"""


class NoMatchingScheme(PixelPayError):
    """None of the offered payment options can be signed by this client"""


class PaymentVerificationFailed(PixelPayError):
    """A payment proof was rejected; the server answers with a fresh 402"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PaymentInfoUnavailable(PixelPayError):
    """A 402 response carried no usable payment requirement"""


class PaymentFailed(PixelPayError):
    """The server still demanded payment after a signed retry"""

    def __init__(self, reason: str = "Payment failed"):
        super().__init__(reason)
        self.reason = reason


class UnexpectedResponse(PixelPayError):
    """A non-2xx, non-402 response from the remote side"""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Request failed ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class WalletNotConfigured(PixelPayError):
    """No signing material is available"""

    def __init__(self, message: str = "Wallet not configured. Set up wallet first via POST /api/wallet"):
        super().__init__(message)


class ResourceNotFound(PixelPayError):
    """The requested catalog resource does not exist"""

    def __init__(self, resource_id: str):
        super().__init__(f"Resource {resource_id} not found")
        self.resource_id = resource_id


class SideEffectFailure(PixelPayError):
    """A post-sale step (mint or reward) failed; never fatal to the sale"""

    def __init__(self, step: str, reason: str):
        super().__init__(f"{step} failed: {reason}")
        self.step = step
        self.reason = reason


class UpstreamUnavailable(PixelPayError):
    """A remote dependency (authority, catalog, chain) was unreachable or timed out"""

    def __init__(self, target: str, reason: Optional[str] = None):
        message = f"{target} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.target = target


class PipelineBusy(PixelPayError):
    """A buyer pipeline run is already in flight"""

    def __init__(self):
        super().__init__("A purchase pipeline run is already in progress")


class ContractNotConfigured(PixelPayError):
    """A contract address is missing from the settings store"""

    def __init__(self, setting_key: str):
        super().__init__(f"Contract address '{setting_key}' is not configured")
        self.setting_key = setting_key
