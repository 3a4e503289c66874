# backend/repairdesk/core/enums.py
"""
Core enums for the repairdesk platform.

Roles gate booking transitions; see repairdesk.domain.booking_state.
"""

from enum import Enum


class RoleName(str, Enum):
    """
    Actor roles known to the booking core.

    SYSTEM is never stored on a user; it identifies transitions made by
    the platform itself (auto-assignment at creation).
    """

    USER = "user"
    TECHNICIAN = "technician"
    ADMIN = "admin"
    SYSTEM = "system"
