"""
SDK for the X API v2.

Provides the budget-guarded client and OAuth helpers.
"""

from .client import SessionCost, XClient

__all__ = ["SessionCost", "XClient"]
