"""
tagml: maximum entropy and perceptron training, inference and decoding
"""

__version__ = "0.1.0"

from .core import TrainingConfig, setup_logging, TagmlError
from .indexing import Event, ListEventStream, FileEventStream, TwoPassIndexer, OnePassIndexer
from .model import Model, ModelType, save_model, load_model
from .training import train, create_trainer, TrainingResult
from .sequence import BeamSearch, Sequence

__all__ = [
    '__version__',
    'TrainingConfig',
    'setup_logging',
    'TagmlError',
    'Event',
    'ListEventStream',
    'FileEventStream',
    'TwoPassIndexer',
    'OnePassIndexer',
    'Model',
    'ModelType',
    'save_model',
    'load_model',
    'train',
    'create_trainer',
    'TrainingResult',
    'BeamSearch',
    'Sequence',
]
