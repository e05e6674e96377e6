"""Storefront order core.

Turns validated carts into immutable orders and drives them through the
fulfillment lifecycle while keeping inventory quantities consistent.
"""

__version__ = "0.1.0"
