"""
PixelPay Seller Agent
Sells gallery images behind x402 and rewards buyers on-chain
"""
