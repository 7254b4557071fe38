"""Checkout domain - pricing, discount codes and form validation"""

from .router import router

__all__ = ["router"]
