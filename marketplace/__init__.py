"""
Digital Asset Marketplace

Backend for a moderated image marketplace:
1. Signed direct-to-storage uploads, moderated by admins
2. PayPal checkout with redirect approval and capture callback
3. Purchase ledger with one purchase per user per asset
4. Download pages and invoices for purchasers
"""

__version__ = "1.0.0"
