"""
PixelPay
Autonomous agent-to-agent art economy over x402 micropayments
"""

__version__ = "0.1.0"
