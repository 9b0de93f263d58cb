"""
Trainers that turn indexed events into models
"""

from .base import Trainer, TrainingDiagnostics, TrainingResult
from .gis import GISTrainer
from .perceptron import PerceptronTrainer
from .sequence_perceptron import SequencePerceptronTrainer
from .quasinewton import QNTrainer, QNMinimizer, NegLogLikelihood, ParallelNegLogLikelihood
from .factory import TRAINERS, create_trainer, register_trainer, train

__all__ = [
    'Trainer',
    'TrainingDiagnostics',
    'TrainingResult',
    'GISTrainer',
    'PerceptronTrainer',
    'SequencePerceptronTrainer',
    'QNTrainer',
    'QNMinimizer',
    'NegLogLikelihood',
    'ParallelNegLogLikelihood',
    'TRAINERS',
    'create_trainer',
    'register_trainer',
    'train',
]
