"""
Conversion pipeline error taxonomy
"""

from typing import Any, Dict, Optional

from .base import SheetBridgeError


class InputError(SheetBridgeError):
    """Malformed, empty, oversized or structurally unsupported input"""

    category = "Invalid Input"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_INPUT", details=details)


class ConversionError(SheetBridgeError):
    """Normalization/serialization failure outside the AI path"""

    category = "Conversion Error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="CONVERSION_ERROR", details=details)


class AIError(SheetBridgeError):
    """Any failure in the AI enhancement path; aborts the whole enhancement"""

    category = "AI Processing Error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="AI_PROCESSING_ERROR", details=details)


class CacheError(SheetBridgeError):
    """Cache read/write/decode failure; always recovered locally as a miss"""

    category = "Cache Error"

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(
            message=f"Cache error: {message}",
            code="CACHE_ERROR",
            details={"key": key} if key else {},
        )
