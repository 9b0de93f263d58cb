"""
Averaged perceptron

Mistake-driven additive updates: whenever the current weights predict the
wrong outcome for an event, the weights of its active predicates move
towards the true outcome and away from the predicted one. Averaging the
weights over iterations makes the final model much more stable.
"""

import logging
import math
from typing import List, Optional

import numpy as np

from ..core.config import PERCEPTRON_VALUE, TOLERANCE_PARAM, TrainingConfig
from ..core.exceptions import InvalidArgumentError
from ..indexing.indexer import IndexedEvents
from ..model.context import Context
from ..model.model import Model
from ..model.types import ModelType
from .base import STOP_MAX_ITERATIONS, STOP_TOLERANCE, Trainer, TrainingResult

logger = logging.getLogger(__name__)

USE_AVERAGE_PARAM = 'UseAverage'
USE_SKIPPED_AVERAGING_PARAM = 'UseSkippedAveraging'
STEP_SIZE_DECREASE_PARAM = 'StepSizeDecrease'

TOLERANCE_DEFAULT = 0.00001


def is_perfect_square(n: int) -> bool:
    root = math.isqrt(n)
    return root * root == n


class PerceptronTrainer(Trainer):
    """Averaged perceptron training (``Algorithm: PERCEPTRON``)

    Events are not merged before training: every pattern is replayed once
    per raw event, in stream order.
    """

    algorithm = PERCEPTRON_VALUE
    sort_and_merge = False

    def __init__(self, config: Optional[TrainingConfig] = None):
        super().__init__(config)
        self.use_average = self.config.get_bool(USE_AVERAGE_PARAM, True)
        self.use_skipped_averaging = self.config.get_bool(USE_SKIPPED_AVERAGING_PARAM, False)
        # skipped averaging only makes sense on top of averaging
        if self.use_skipped_averaging:
            self.use_average = True

        self.step_size_decrease: Optional[float] = None
        decrease = self.config.get_float(STEP_SIZE_DECREASE_PARAM, 0.0)
        if decrease > 0:
            self.set_step_size_decrease(decrease)

        self.tolerance = TOLERANCE_DEFAULT
        self.set_tolerance(self.config.get_float(TOLERANCE_PARAM, TOLERANCE_DEFAULT))

    def set_tolerance(self, tolerance: float) -> None:
        """Stop once training accuracy changes less than this between iterations"""
        if tolerance < 0:
            raise InvalidArgumentError(
                f"tolerance must be a positive number but is {tolerance}!")
        self.tolerance = tolerance

    def set_step_size_decrease(self, decrease: float) -> None:
        """Shrink the step size by ``decrease`` (a percentage) every iteration"""
        if decrease < 0 or decrease > 100:
            raise InvalidArgumentError(
                f"decrease must be between 0 and 100 but is {decrease}!")
        self.step_size_decrease = decrease

    def train_indexed(self, indexed: IndexedEvents) -> TrainingResult:
        logger.info("Incorporating indexed data for training...")
        diagnostics = self._new_diagnostics(indexed)

        num_outcomes = indexed.num_outcomes
        num_preds = indexed.num_predicates
        contexts = [context.tolist() for context in indexed.contexts]
        values = None
        if indexed.values is not None:
            values = [None if v is None else v.tolist() for v in indexed.values]
        outcome_list = indexed.outcome_list.tolist()
        seen = indexed.num_times_events_seen.tolist()

        params = np.zeros((num_preds, num_outcomes), dtype=np.float64)
        summed_params = np.zeros((num_preds, num_outcomes), dtype=np.float64)
        num_times_summed = 0

        # The previous three accuracies; stop when the current one is within
        # tolerance of all of them
        prev_accuracy1 = prev_accuracy2 = prev_accuracy3 = 0.0

        logger.info(f"Computing model parameters, performing {self.iterations} iterations.")
        stepsize = 1.0
        iterations_run = 0
        for i in range(1, self.iterations + 1):
            iterations_run = i
            if self.step_size_decrease is not None:
                stepsize *= 1 - self.step_size_decrease

            num_correct = 0
            for ei, context in enumerate(contexts):
                target = outcome_list[ei]
                event_values = values[ei] if values is not None else None
                for _ in range(seen[ei]):
                    scores = np.zeros(num_outcomes, dtype=np.float64)
                    if event_values is None:
                        for pi in context:
                            scores += params[pi]
                    else:
                        for pi, value in zip(context, event_values):
                            scores += params[pi] * value
                    predicted = int(np.argmax(scores))

                    if predicted != target:
                        if event_values is None:
                            for pi in context:
                                params[pi, target] += stepsize
                                params[pi, predicted] -= stepsize
                        else:
                            for pi, value in zip(context, event_values):
                                params[pi, target] += stepsize * value
                                params[pi, predicted] -= stepsize * value
                    else:
                        num_correct += 1

            training_accuracy = num_correct / indexed.num_events
            diagnostics.accuracies.append(training_accuracy)
            if i < 10 or i % 10 == 0:
                logger.info(f"{i:>3}:  ({num_correct}/{indexed.num_events}) {training_accuracy}")

            # skipped schedule: iterations below 20 and perfect squares
            do_averaging = (self.use_average and self.use_skipped_averaging
                            and (i < 20 or is_perfect_square(i))) or self.use_average
            if do_averaging:
                num_times_summed += 1
                summed_params += params

            if (abs(prev_accuracy1 - training_accuracy) < self.tolerance
                    and abs(prev_accuracy2 - training_accuracy) < self.tolerance
                    and abs(prev_accuracy3 - training_accuracy) < self.tolerance):
                logger.info(f"Stopping: change in training set accuracy less than {self.tolerance}")
                diagnostics.stop_reason = STOP_TOLERANCE
                break

            prev_accuracy1 = prev_accuracy2
            prev_accuracy2 = prev_accuracy3
            prev_accuracy3 = training_accuracy
        else:
            diagnostics.stop_reason = STOP_MAX_ITERATIONS

        diagnostics.iterations = iterations_run
        diagnostics.training_accuracy = self._training_stats(params, contexts, values,
                                                             outcome_list, seen,
                                                             indexed.num_events)

        if self.use_average:
            final_params = summed_params / num_times_summed
        else:
            final_params = params

        all_outcomes = list(range(num_outcomes))
        model_params: List[Context] = [Context(all_outcomes, final_params[pi])
                                       for pi in range(num_preds)]
        model = Model(model_params, indexed.pred_labels, indexed.outcome_labels,
                      ModelType.PERCEPTRON).compacted()
        return TrainingResult(model=model, diagnostics=diagnostics)

    @staticmethod
    def _training_stats(params, contexts, values, outcome_list, seen, num_events) -> float:
        """Accuracy of the (non-averaged) final weights on the training data"""
        num_correct = 0
        for ei, context in enumerate(contexts):
            scores = np.zeros(params.shape[1], dtype=np.float64)
            event_values = values[ei] if values is not None else None
            if event_values is None:
                for pi in context:
                    scores += params[pi]
            else:
                for pi, value in zip(context, event_values):
                    scores += params[pi] * value
            if int(np.argmax(scores)) == outcome_list[ei]:
                num_correct += seen[ei]
        accuracy = num_correct / num_events
        logger.info(f"Stats: ({num_correct}/{num_events}) {accuracy}")
        return accuracy
