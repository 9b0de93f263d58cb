"""
Custom exceptions for tagml
"""

class TagmlError(Exception):
    """Base exception for tagml"""
    pass

class ConfigurationError(TagmlError):
    """Training configuration errors"""
    pass

class InsufficientTrainingDataError(TagmlError):
    """Raised when there are no events to train on"""
    pass

class NegativeValueError(TagmlError, ValueError):
    """Real-valued events must not carry negative feature values"""
    pass

class InvalidArgumentError(TagmlError, ValueError):
    """Argument outside of the accepted domain (dimensions, tolerances, ...)"""
    pass

class UnsupportedOperationError(TagmlError):
    """Operation not supported by the object it was called on"""
    pass

class ModelFormatError(TagmlError):
    """Truncated or structurally inconsistent model data"""
    pass

class TrainingError(TagmlError):
    """Errors raised while fitting model parameters"""
    pass

class InconsistentEventStreamError(TagmlError):
    """An event stream yielded different events when it was read again"""
    pass
