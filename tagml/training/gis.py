"""
Generalized Iterative Scaling

Fits a maximum entropy model by repeatedly scaling every parameter with the
ratio of observed to expected feature counts. The correction constant (the
largest number of active features, or largest value sum, of any pattern)
bounds the step so that each iteration is a valid scaling.

The trainer runs exactly the configured number of iterations and is
single-threaded; the log-likelihood it reports is for diagnostics only.
"""

import logging
from typing import List, Optional

import numpy as np
from numpy.typing import NDArray

from ..core.config import MAXENT_VALUE, TrainingConfig
from ..core.exceptions import ConfigurationError
from ..indexing.indexer import IndexedEvents
from ..model.context import Context
from ..model.model import Model
from ..model.types import ModelType
from .base import STOP_MAX_ITERATIONS, Trainer, TrainingResult

logger = logging.getLogger(__name__)

SMOOTHING_PARAM = 'Smoothing'
SMOOTHING_OBSERVATION_PARAM = 'SmoothingObservation'
GAUSSIAN_SMOOTHING_PARAM = 'GaussianSmoothing'
SIGMA_PARAM = 'Sigma'

SMOOTHING_DEFAULT = False
SMOOTHING_OBSERVATION_DEFAULT = 0.1
GAUSSIAN_SMOOTHING_DEFAULT = False
SIGMA_DEFAULT = 2.0

NEWTON_MAX_STEPS = 50
NEWTON_TOLERANCE = 0.000001


class GISTrainer(Trainer):
    """Maximum entropy training with GIS (``Algorithm: MAXENT``)"""

    algorithm = MAXENT_VALUE
    sort_and_merge = True

    def __init__(self, config: Optional[TrainingConfig] = None):
        super().__init__(config)
        self.use_simple_smoothing = self.config.get_bool(SMOOTHING_PARAM, SMOOTHING_DEFAULT)
        self.smoothing_observation = self.config.get_float(
            SMOOTHING_OBSERVATION_PARAM, SMOOTHING_OBSERVATION_DEFAULT)
        self.use_gaussian_smoothing = self.config.get_bool(
            GAUSSIAN_SMOOTHING_PARAM, GAUSSIAN_SMOOTHING_DEFAULT)
        self.sigma = self.config.get_float(SIGMA_PARAM, SIGMA_DEFAULT)

        if self.smoothing_observation < 0:
            raise ConfigurationError(
                f"{SMOOTHING_OBSERVATION_PARAM} must not be negative, "
                f"got {self.smoothing_observation}")
        if self.use_gaussian_smoothing and self.sigma <= 0:
            raise ConfigurationError(f"{SIGMA_PARAM} must be positive, got {self.sigma}")
        if self.config.threads > 1:
            logger.info("GIS training is single-threaded, ignoring Threads")

    def train_indexed(self, indexed: IndexedEvents) -> TrainingResult:
        """
        Fit GIS parameters on already indexed events

        Args:
            indexed: Output of one of the data indexers

        Returns:
            TrainingResult holding a GIS model and per-iteration log-likelihoods
        """
        logger.info("Incorporating indexed data for training...")
        diagnostics = self._new_diagnostics(indexed)

        entries = indexed.entries
        num_outcomes = indexed.num_outcomes
        num_preds = indexed.num_predicates
        seen = indexed.num_times_events_seen.astype(np.float64)
        outcome_list = indexed.outcome_list.astype(np.int64)

        correction_constant = self._correction_constant(indexed)
        logger.debug(f"Correction constant: {correction_constant}")

        # Observed feature counts
        pred_count = np.zeros((num_preds, num_outcomes), dtype=np.float64)
        np.add.at(pred_count, (entries.cols, outcome_list[entries.rows]),
                  seen[entries.rows] * entries.vals)

        # Each predicate only carries parameters for the outcomes it was
        # observed with, unless simple smoothing is on
        if self.use_simple_smoothing:
            active = np.ones((num_preds, num_outcomes), dtype=bool)
        else:
            active = pred_count > 0

        observed = np.where(pred_count > 0, pred_count, 0.0)
        if self.use_simple_smoothing:
            observed = np.where(active & (pred_count <= 0), self.smoothing_observation, observed)

        params = np.zeros((num_preds, num_outcomes), dtype=np.float64)

        logger.info(f"Computing model parameters, performing {self.iterations} iterations.")
        prev_ll = 0.0
        for i in range(1, self.iterations + 1):
            probs = self._model_distribution(params, entries, indexed.num_unique_events, num_outcomes)
            ll, num_correct = self._log_likelihood(probs, outcome_list, seen)

            model_expects = np.zeros((num_preds, num_outcomes), dtype=np.float64)
            np.add.at(model_expects, entries.cols,
                      probs[entries.rows] * (entries.vals * seen[entries.rows])[:, None])
            model_expects[~active] = 0.0

            if self.use_gaussian_smoothing:
                params[active] += self._gaussian_update(
                    params[active], model_expects[active], observed[active], correction_constant)
            else:
                zero_expects = active & (model_expects == 0)
                if np.any(zero_expects):
                    logger.warning(f"Model expects == 0 for {int(np.sum(zero_expects))} parameters")
                    for pi, oi in zip(*np.nonzero(zero_expects)):
                        logger.debug(f"Model expects == 0 for {indexed.pred_labels[pi]} "
                                     f"{indexed.outcome_labels[oi]}")
                with np.errstate(divide='ignore', invalid='ignore'):
                    params[active] += ((np.log(observed[active]) - np.log(model_expects[active]))
                                       / correction_constant)

            accuracy = num_correct / indexed.num_events
            logger.info(f"{i:>3}:  loglikelihood={ll}\t{accuracy}")
            if i > 1 and ll < prev_ll:
                logger.warning("Model Diverging: loglikelihood decreased")
            diagnostics.log_likelihoods.append(ll)
            diagnostics.accuracies.append(accuracy)
            prev_ll = ll

        diagnostics.iterations = self.iterations
        diagnostics.stop_reason = STOP_MAX_ITERATIONS

        probs = self._model_distribution(params, entries, indexed.num_unique_events, num_outcomes)
        _, num_correct = self._log_likelihood(probs, outcome_list, seen)
        diagnostics.training_accuracy = num_correct / indexed.num_events
        logger.info(f"Training accuracy: {diagnostics.training_accuracy}")

        contexts: List[Context] = []
        for pi in range(num_preds):
            outcomes = np.nonzero(active[pi])[0]
            contexts.append(Context(outcomes, params[pi, outcomes]))
        model = Model(contexts, indexed.pred_labels, indexed.outcome_labels, ModelType.GIS)
        return TrainingResult(model=model, diagnostics=diagnostics)

    @staticmethod
    def _correction_constant(indexed: IndexedEvents) -> float:
        correction_constant = 0.0
        for i, context in enumerate(indexed.contexts):
            values = indexed.value_at(i)
            if values is None:
                size = float(len(context))
            else:
                size = float(np.sum(values))
            if size > correction_constant:
                correction_constant = size
        return correction_constant

    @staticmethod
    def _model_distribution(params: NDArray[np.float64], entries, num_patterns: int,
                            num_outcomes: int) -> NDArray[np.float64]:
        """Softmax over summed weights for every pattern (uniform prior)"""
        scores = np.full((num_patterns, num_outcomes), np.log(1.0 / num_outcomes))
        np.add.at(scores, entries.rows, params[entries.cols] * entries.vals[:, None])
        scores -= np.max(scores, axis=1, keepdims=True)
        np.exp(scores, out=scores)
        scores /= np.sum(scores, axis=1, keepdims=True)
        return scores

    @staticmethod
    def _log_likelihood(probs: NDArray[np.float64], outcome_list: NDArray[np.int64],
                        seen: NDArray[np.float64]):
        true_probs = probs[np.arange(len(outcome_list)), outcome_list]
        with np.errstate(divide='ignore'):
            ll = float(np.sum(np.log(true_probs) * seen))
        correct = np.argmax(probs, axis=1) == outcome_list
        return ll, int(np.sum(seen[correct]))

    def _gaussian_update(self, param: NDArray[np.float64], model_value: NDArray[np.float64],
                         observed_value: NDArray[np.float64],
                         correction_constant: float) -> NDArray[np.float64]:
        """Newton solve of the Gaussian-prior update for every parameter at once"""
        x0 = np.zeros_like(param)
        pending = np.ones(param.shape, dtype=bool)
        for _ in range(NEWTON_MAX_STEPS):
            if not np.any(pending):
                break
            tmp = model_value * np.exp(correction_constant * x0)
            f = tmp + (param + x0) / self.sigma - observed_value
            fp = tmp * correction_constant + 1 / self.sigma
            pending &= fp != 0
            with np.errstate(divide='ignore', invalid='ignore'):
                x = np.where(pending, x0 - f / fp, x0)
            converged = pending & (np.abs(x - x0) < NEWTON_TOLERANCE)
            x0 = np.where(pending, x, x0)
            pending &= ~converged
        return x0
