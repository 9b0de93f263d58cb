"""
Shared trainer machinery: result types and the trainer base class
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from ..core.config import ALGORITHM_PARAM, TrainingConfig
from ..core.exceptions import ConfigurationError
from ..indexing.indexer import IndexedEvents, create_indexer
from ..model.model import Model

logger = logging.getLogger(__name__)

STOP_MAX_ITERATIONS = 'max_iterations'
STOP_TOLERANCE = 'tolerance'
STOP_GRADIENT = 'gradient_norm'
STOP_STEP_SIZE = 'step_size'
STOP_MAX_FCT_EVAL = 'max_function_evaluations'


@dataclass
class TrainingDiagnostics:
    """What happened during one training run"""
    algorithm: str
    num_events: int = 0
    num_unique_events: int = 0
    num_outcomes: int = 0
    num_predicates: int = 0
    event_hash: str = ''
    iterations: int = 0                                       # iterations actually run
    log_likelihoods: List[float] = field(default_factory=list)  # per iteration (GIS, QN)
    accuracies: List[float] = field(default_factory=list)       # per iteration training accuracy
    training_accuracy: Optional[float] = None
    stop_reason: str = STOP_MAX_ITERATIONS
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TrainingResult:
    """A fitted model plus the diagnostics of the run that produced it"""
    model: Model
    diagnostics: TrainingDiagnostics


class Trainer:
    """
    Base class of the training algorithms

    Subclasses read their hyperparameters from a :class:`TrainingConfig` in
    ``__init__`` (raising ConfigurationError/InvalidArgumentError on bad
    values) and implement :meth:`train_indexed`.
    """

    algorithm = ''
    aliases: FrozenSet[str] = frozenset()    # further names it was registered under
    sort_and_merge = True

    def __init__(self, config: Optional[TrainingConfig] = None):
        self.config = config if config is not None else TrainingConfig()
        configured = self.config.get_str(ALGORITHM_PARAM)
        if configured is not None and configured.upper() != self.algorithm \
                and configured.upper() not in self.aliases:
            raise ConfigurationError(
                f"{self.__class__.__name__} cannot train algorithm {configured!r}")
        self.iterations = self.config.iterations
        if self.iterations <= 0:
            raise ConfigurationError(f"Iterations must be positive, got {self.iterations}")

    def train(self, events) -> TrainingResult:
        """Index an event stream (or list of events) and train on it"""
        indexer = create_indexer(self.config, self.sort_and_merge)
        indexed = indexer.index(events)
        return self.train_indexed(indexed)

    def train_indexed(self, indexed: IndexedEvents) -> TrainingResult:
        raise NotImplementedError

    def _new_diagnostics(self, indexed: IndexedEvents) -> TrainingDiagnostics:
        logger.info(f"\tNumber of Event Tokens: {indexed.num_unique_events}")
        logger.info(f"\t    Number of Outcomes: {indexed.num_outcomes}")
        logger.info(f"\t  Number of Predicates: {indexed.num_predicates}")
        return TrainingDiagnostics(
            algorithm=self.algorithm,
            num_events=indexed.num_events,
            num_unique_events=indexed.num_unique_events,
            num_outcomes=indexed.num_outcomes,
            num_predicates=indexed.num_predicates,
            event_hash=indexed.event_hash(),
            parameters=self.config.to_dict(),
        )
