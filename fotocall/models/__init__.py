"""Database models package for the FotoCall lead tracker."""

from .base import Base
from .contact import CallStatus, ContactRow

__all__ = [
    "Base",
    "CallStatus",
    "ContactRow",
]
