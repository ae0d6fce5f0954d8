"""
SheetBridge: spreadsheet <-> JSON conversion with optional AI clean-up
and an in-memory, content-addressed response cache.
"""

__version__ = "0.1.0"
