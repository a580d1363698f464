"""Bookstore order-fulfillment backend.

Cart-to-order checkout, promo codes, payment confirmation, the order
status lifecycle and asynchronous notification fan-out.
"""

__version__ = "0.1.0"
