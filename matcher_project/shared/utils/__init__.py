"""
Shared utilities module.
"""
from .logging_utils import get_logger
from .timer import Timer
from .runtime import compute_session, TrainingExecutor
from .exceptions import (
    MatcherException,
    NotFoundError,
    BadRequestError,
    ValidationError,
    DataError,
    InternalError,
    TrainingError,
    InferenceError,
    ModelRegistryError,
    FeatureExtractionError,
)

__all__ = [
    'get_logger',
    'Timer',
    'compute_session',
    'TrainingExecutor',
    'MatcherException',
    'NotFoundError',
    'BadRequestError',
    'ValidationError',
    'DataError',
    'InternalError',
    'TrainingError',
    'InferenceError',
    'ModelRegistryError',
    'FeatureExtractionError',
]
