"""
Custom exceptions for the semantic matcher.

Every exception carries the HTTP status the API layer answers with, so
views can translate failures without knowing where they came from.
"""


class MatcherException(Exception):
    """Base exception for the semantic matcher."""
    status_code = 500


class NotFoundError(MatcherException):
    """A referenced model, dataset or workspace does not exist."""
    status_code = 404


class BadRequestError(MatcherException):
    """An operation was attempted that fails its precondition."""
    status_code = 400


class ValidationError(BadRequestError):
    """Exception raised when a model or dataset request is malformed."""
    pass


class DataError(BadRequestError):
    """Exception raised during data operations."""
    pass


class InternalError(MatcherException):
    """Resource creation, serialization or computation failed."""
    status_code = 500


class TrainingError(InternalError):
    """Exception raised during model training."""
    pass


class InferenceError(InternalError):
    """Exception raised during inference."""
    pass


class ModelRegistryError(InternalError):
    """Exception raised during model registry operations."""
    pass


class FeatureExtractionError(InternalError):
    """Exception raised when feature vectors cannot be built."""
    pass
