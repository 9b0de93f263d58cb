"""
Quasi-Newton maxent trainer (``Algorithm: MAXENT_QN``)
"""

import logging
from typing import Optional

import numpy as np

from ...core.config import MAXENT_QN_VALUE, TOLERANCE_PARAM, TrainingConfig
from ...core.exceptions import ConfigurationError, TrainingError
from ...indexing.indexer import IndexedEvents
from ...model.context import Context
from ...model.model import Model
from ...model.types import ModelType
from ..base import Trainer, TrainingResult
from .minimizer import (
    CONVERGE_TOLERANCE,
    L1COST_DEFAULT,
    L2COST_DEFAULT,
    M_DEFAULT,
    MAX_FCT_EVAL_DEFAULT,
    QNMinimizer,
)
from .objective import NegLogLikelihood, ParallelNegLogLikelihood

logger = logging.getLogger(__name__)

L1COST_PARAM = 'L1COST'
L2COST_PARAM = 'L2COST'
M_PARAM = 'NumOfUpdates'
MAX_FCT_EVAL_PARAM = 'MaxFctEval'


class QNTrainer(Trainer):
    """Minimizes the (optionally L1/L2 regularized) negative log-likelihood"""

    algorithm = MAXENT_QN_VALUE
    sort_and_merge = True

    def __init__(self, config: Optional[TrainingConfig] = None):
        super().__init__(config)
        self.m = self.config.get_int(M_PARAM, M_DEFAULT)
        self.max_fct_eval = self.config.get_int(MAX_FCT_EVAL_PARAM, MAX_FCT_EVAL_DEFAULT)
        self.threads = self.config.threads
        self.l1_cost = self.config.get_float(L1COST_PARAM, L1COST_DEFAULT)
        self.l2_cost = self.config.get_float(L2COST_PARAM, L2COST_DEFAULT)
        self.tolerance = self.config.get_float(TOLERANCE_PARAM, CONVERGE_TOLERANCE)

        if self.m <= 0:
            raise ConfigurationError(f"{M_PARAM} must be positive, got {self.m}")
        if self.max_fct_eval <= 0:
            raise ConfigurationError(f"{MAX_FCT_EVAL_PARAM} must be positive, got {self.max_fct_eval}")
        if self.threads < 1:
            raise ConfigurationError(f"Threads must be at least 1, got {self.threads}")
        if self.l1_cost < 0 or self.l2_cost < 0:
            raise ConfigurationError(
                f"{L1COST_PARAM} and {L2COST_PARAM} must not be negative, "
                f"got {self.l1_cost} and {self.l2_cost}")

    def train_indexed(self, indexed: IndexedEvents) -> TrainingResult:
        """
        Fit the parameter vector with L-BFGS and build a QN model from it

        Args:
            indexed: Output of one of the data indexers

        Returns:
            TrainingResult holding a QN model; every predicate carries a weight
            for every outcome
        """
        diagnostics = self._new_diagnostics(indexed)

        if self.threads == 1:
            logger.info("Computing model parameters ...")
            objective = NegLogLikelihood(indexed)
        else:
            logger.info(f"Computing model parameters in {self.threads} threads ...")
            objective = ParallelNegLogLikelihood(indexed, self.threads)

        try:
            minimizer = QNMinimizer(self.l1_cost, self.l2_cost, self.iterations, self.m,
                                    self.max_fct_eval, self.tolerance,
                                    evaluator=objective.accuracy)
            parameters = minimizer.minimize(objective)
        finally:
            if isinstance(objective, ParallelNegLogLikelihood):
                objective.close()
        if not np.all(np.isfinite(parameters)):
            raise TrainingError(f"Optimization diverged after {minimizer.iterations_run} iterations "
                                f"({minimizer.stop_reason}): non-finite parameters")

        diagnostics.iterations = minimizer.iterations_run
        diagnostics.stop_reason = minimizer.stop_reason
        diagnostics.log_likelihoods = [-value for value in minimizer.values]
        diagnostics.accuracies = list(minimizer.accuracies)
        diagnostics.training_accuracy = objective.accuracy(parameters)

        num_preds = indexed.num_predicates
        num_outcomes = indexed.num_outcomes
        weights = parameters.reshape(num_outcomes, num_preds)
        all_outcomes = np.arange(num_outcomes)
        params = [Context(all_outcomes, weights[:, ci]) for ci in range(num_preds)]
        model = Model(params, indexed.pred_labels, indexed.outcome_labels, ModelType.QN)
        return TrainingResult(model=model, diagnostics=diagnostics)
