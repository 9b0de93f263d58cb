"""
Core tagml components
"""

from .config import TrainingConfig, setup_logging
from .exceptions import (
    TagmlError,
    ConfigurationError,
    InsufficientTrainingDataError,
    NegativeValueError,
    InvalidArgumentError,
    UnsupportedOperationError,
    ModelFormatError,
    TrainingError,
    InconsistentEventStreamError,
)

__all__ = [
    'TrainingConfig',
    'setup_logging',
    'TagmlError',
    'ConfigurationError',
    'InsufficientTrainingDataError',
    'NegativeValueError',
    'InvalidArgumentError',
    'UnsupportedOperationError',
    'ModelFormatError',
    'TrainingError',
    'InconsistentEventStreamError',
]
