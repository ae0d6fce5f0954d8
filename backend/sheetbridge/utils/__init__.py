"""
Utility helpers for SheetBridge (logging, JSON canonicalization).
"""
