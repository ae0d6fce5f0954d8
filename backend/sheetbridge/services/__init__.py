"""
Conversion pipeline services.

Import from the module paths directly, e.g.
    from sheetbridge.services.sheet_normalizer import SheetNormalizer
so that importing one service never initializes the others.
"""

__all__ = []
