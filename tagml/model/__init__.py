"""
Fitted models, their evaluation and persistence
"""

from .types import ModelType
from .context import Context
from .model import Model
from .evaluator import evaluate, sum_features, softmax_normalize, min_shift_normalize
from .io import (
    BinaryDataReader,
    BinaryDataWriter,
    PlainTextDataReader,
    PlainTextDataWriter,
    ModelReader,
    ModelWriter,
    save_model,
    load_model,
)

__all__ = [
    'ModelType',
    'Context',
    'Model',
    'evaluate',
    'sum_features',
    'softmax_normalize',
    'min_shift_normalize',
    'BinaryDataReader',
    'BinaryDataWriter',
    'PlainTextDataReader',
    'PlainTextDataWriter',
    'ModelReader',
    'ModelWriter',
    'save_model',
    'load_model',
]
