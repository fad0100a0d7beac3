"""
Column feature extraction.
"""
from .attribute import Attribute
from .extractors import (
    FeatureExtractor,
    SingleFeatureExtractor,
    GroupFeatureExtractor,
    SINGLE_FEATURES,
    GROUP_FEATURES,
    CLASS_EXAMPLE_GROUPS,
)
from .builder import FeatureSettings, FeatureVectorBuilder, DEFAULT_FEATURES_CONFIG

__all__ = [
    'Attribute',
    'FeatureExtractor',
    'SingleFeatureExtractor',
    'GroupFeatureExtractor',
    'SINGLE_FEATURES',
    'GROUP_FEATURES',
    'CLASS_EXAMPLE_GROUPS',
    'FeatureSettings',
    'FeatureVectorBuilder',
    'DEFAULT_FEATURES_CONFIG',
]
