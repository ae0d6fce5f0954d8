"""Test utilities for SheetBridge."""
