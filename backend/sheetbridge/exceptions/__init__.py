"""
Domain exceptions for SheetBridge
Each category maps to a distinct, user-actionable failure at the HTTP boundary
"""

from .base import SheetBridgeError
from .conversion import AIError, CacheError, ConversionError, InputError

__all__ = [
    "SheetBridgeError",
    "InputError",
    "ConversionError",
    "AIError",
    "CacheError",
]
