"""
ReCircle Reward Distribution Engine

Distributes B3TR rewards for validated transportation receipts on VeChain:
- Confidence-based routing (immediate / pending approval / manual review)
- 70/30 recipient and operating-fund split
- Sequential transfer legs confirmed by ledger receipts
- Idempotency per receipt id
"""

__version__ = "0.1.0"
__author__ = "ReCircle Team"
