"""
Status handlers package.

Each handler drives integrations towards one or more desired states and is
looked up through the HandlerRegistry.
"""

from handlers.activate import ActivateHandler
from handlers.base import StatusChangeHandler
from handlers.deactivate import DeactivateHandler
from handlers.registry import HandlerConflictError, HandlerRegistry

__all__ = [
    "ActivateHandler",
    "DeactivateHandler",
    "HandlerConflictError",
    "HandlerRegistry",
    "StatusChangeHandler",
]
