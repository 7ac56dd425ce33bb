"""Swapgate - custodial ADA/ETH swap coordinator."""

__version__ = "0.1.0"
