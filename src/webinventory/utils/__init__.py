"""
Utilities Package.

Provides login session persistence.
"""

from .session_manager import (
    SessionManager,
    SessionData,
)

__all__ = [
    "SessionManager",
    "SessionData",
]
