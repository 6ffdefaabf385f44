"""Catpoint Hardware Adapters"""

from .cat_classifier import (
    CatClassifier,
    FakeCatClassifier,
    YoloCatClassifier,
    HAS_YOLO,
    create_classifier,
    decode_image,
)

__all__ = [
    'CatClassifier',
    'FakeCatClassifier',
    'YoloCatClassifier',
    'HAS_YOLO',
    'create_classifier',
    'decode_image',
]
