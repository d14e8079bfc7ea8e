"""Nightfall: game settlement, refunds and ledger for the Nightfall Casino."""

__version__ = "0.1.0"
__author__ = "Nightfall Team"

__all__ = ["__version__", "__author__"]
