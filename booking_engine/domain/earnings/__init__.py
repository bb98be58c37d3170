"""Earnings domain - Booking completion and provider pay"""

from .router import router

__all__ = ["router"]
