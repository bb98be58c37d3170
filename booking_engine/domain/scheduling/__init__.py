"""Scheduling domain - Provider assignment, invitations, recurring series and capacity"""

from .router import router

__all__ = ["router"]
