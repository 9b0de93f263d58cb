"""
Trainer registry

Maps the ``Algorithm`` names of a training configuration to trainer
classes. The registry is explicit; callers that need another algorithm
register it with :func:`register_trainer`.
"""

import logging
from typing import Dict, Optional, Type

from ..core.config import (
    MAXENT_QN_VALUE,
    MAXENT_VALUE,
    PERCEPTRON_SEQUENCE_VALUE,
    PERCEPTRON_VALUE,
    TrainingConfig,
)
from ..core.exceptions import ConfigurationError
from .base import Trainer, TrainingResult
from .gis import GISTrainer
from .perceptron import PerceptronTrainer
from .quasinewton.trainer import QNTrainer
from .sequence_perceptron import SequencePerceptronTrainer

logger = logging.getLogger(__name__)

TRAINERS: Dict[str, Type[Trainer]] = {
    MAXENT_VALUE: GISTrainer,
    MAXENT_QN_VALUE: QNTrainer,
    PERCEPTRON_VALUE: PerceptronTrainer,
    PERCEPTRON_SEQUENCE_VALUE: SequencePerceptronTrainer,
}


def register_trainer(name: str, trainer_class: Type[Trainer]) -> None:
    """Make ``trainer_class`` available as ``Algorithm: name``"""
    key = name.upper()
    if key != trainer_class.algorithm:
        trainer_class.aliases = trainer_class.aliases | {key}
    TRAINERS[key] = trainer_class


def create_trainer(config: Optional[TrainingConfig] = None) -> Trainer:
    """Instantiate the trainer selected by ``Algorithm`` (MAXENT when unset)"""
    config = config if config is not None else TrainingConfig()
    algorithm = config.algorithm
    trainer_class = TRAINERS.get(algorithm)
    if trainer_class is None:
        raise ConfigurationError(
            f"Unknown algorithm {algorithm!r}, expected one of {', '.join(TRAINERS)}")
    logger.debug(f"Using {trainer_class.__name__} for {algorithm}")
    return trainer_class(config)


def train(events, config: Optional[TrainingConfig] = None) -> TrainingResult:
    """Index ``events`` and train the configured algorithm on them"""
    trainer = create_trainer(config)
    logger.info(f"Training {trainer.algorithm} model")
    result = trainer.train(events)
    logger.info(f"Finished training after {result.diagnostics.iterations} iterations "
                f"({result.diagnostics.stop_reason})")
    return result
