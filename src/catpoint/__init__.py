"""Catpoint Edge - home security alarm controller"""

__version__ = "1.0.0"
