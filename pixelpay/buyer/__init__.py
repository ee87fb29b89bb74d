"""
PixelPay Buyer Agent
Discovers, evaluates and pays for gallery images autonomously
"""
