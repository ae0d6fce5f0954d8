"""
Base exception for the conversion pipeline
"""

from typing import Any, Dict, Optional


class SheetBridgeError(Exception):
    """Base error carrying a machine-readable code and optional details"""

    category = "Error"

    def __init__(self, message: str, code: str = "SHEETBRIDGE_ERROR",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.category,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            payload["details"] = self.details
        return payload
