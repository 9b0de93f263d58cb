"""
Sequence perceptron

Trains directly on whole sequences: every sequence is tagged with the
current weights, and when the tagging differs anywhere from the gold
outcomes the features of the gold events are rewarded and those of the
tagged events penalized. Averaging keeps a running sum of the weights after
every sequence.
"""

import logging
from collections import defaultdict
from typing import Dict, Optional, Tuple

import numpy as np

from ..core.config import PERCEPTRON_SEQUENCE_VALUE, TrainingConfig
from ..core.exceptions import UnsupportedOperationError
from ..indexing.indexer import IndexedEvents, OnePassIndexer
from ..model.context import Context
from ..model.model import Model
from ..model.types import ModelType
from ..sequence.stream import SequenceStream
from .base import STOP_MAX_ITERATIONS, Trainer, TrainingResult
from .perceptron import USE_AVERAGE_PARAM

logger = logging.getLogger(__name__)


class SequencePerceptronTrainer(Trainer):
    """Perceptron over sequences (``Algorithm: PERCEPTRON_SEQUENCE``)"""

    algorithm = PERCEPTRON_SEQUENCE_VALUE
    sort_and_merge = False

    def __init__(self, config: Optional[TrainingConfig] = None):
        super().__init__(config)
        self.use_average = self.config.get_bool(USE_AVERAGE_PARAM, True)

    def train(self, sequences) -> TrainingResult:
        """Train on a :class:`SequenceStream`"""
        if not isinstance(sequences, SequenceStream):
            raise UnsupportedOperationError(
                f"{self.__class__.__name__} trains on a SequenceStream, "
                f"got {type(sequences).__name__}")
        indexed = OnePassIndexer(cutoff=self.config.cutoff, sort=False).index(
            sequences.event_stream())
        return self._train_sequences(sequences, indexed)

    def train_indexed(self, indexed: IndexedEvents) -> TrainingResult:
        raise UnsupportedOperationError(
            "Sequence training needs the sequences, not only their indexed events")

    def _model(self, params: np.ndarray, indexed: IndexedEvents) -> Model:
        all_outcomes = list(range(indexed.num_outcomes))
        contexts = [Context(all_outcomes, params[pi]) for pi in range(indexed.num_predicates)]
        return Model(contexts, indexed.pred_labels, indexed.outcome_labels, ModelType.PERCEPTRON)

    def _train_sequences(self, sequences: SequenceStream,
                         indexed: IndexedEvents) -> TrainingResult:
        diagnostics = self._new_diagnostics(indexed)
        pmap = {label: pi for pi, label in enumerate(indexed.pred_labels)}
        omap = {label: oi for oi, label in enumerate(indexed.outcome_labels)}
        num_sequences = len(sequences)

        params = np.zeros((indexed.num_predicates, indexed.num_outcomes), dtype=np.float64)
        summed_params = np.zeros_like(params)

        logger.info(f"Performing {self.iterations} iterations over {num_sequences} sequences.")
        for i in range(1, self.iterations + 1):
            model = self._model(params, indexed)
            num_correct = 0
            for sequence in sequences:
                tagged = sequences.update_context(sequence, model)
                gold = sequences.events(sequence)
                mistakes = sum(1 for t, g in zip(tagged, gold) if t.outcome != g.outcome)
                num_correct += len(gold) - mistakes

                if mistakes:
                    counts: Dict[Tuple[int, str], float] = defaultdict(float)
                    for sign, events in ((1.0, gold), (-1.0, tagged)):
                        for event in events:
                            oi = omap[event.outcome]
                            values = event.values or (1.0,) * len(event.context)
                            for predicate, value in zip(event.context, values):
                                counts[(oi, predicate)] += sign * value
                    for (oi, predicate), count in counts.items():
                        pi = pmap.get(predicate)
                        if pi is not None and count != 0:
                            params[pi, oi] += count
                    model = self._model(params, indexed)

                if self.use_average:
                    summed_params += params

            accuracy = num_correct / indexed.num_events
            diagnostics.accuracies.append(accuracy)
            logger.info(f"{i:>3}:  ({num_correct}/{indexed.num_events}) {accuracy}")

        diagnostics.iterations = self.iterations
        diagnostics.stop_reason = STOP_MAX_ITERATIONS

        if self.use_average:
            params = summed_params / (self.iterations * num_sequences)
        model = self._model(params, indexed)
        diagnostics.training_accuracy = self._training_stats(sequences, model,
                                                             indexed.num_events)
        return TrainingResult(model=model.compacted(), diagnostics=diagnostics)

    @staticmethod
    def _training_stats(sequences: SequenceStream, model: Model, num_events: int) -> float:
        num_correct = 0
        for sequence in sequences:
            tagged = sequences.update_context(sequence, model)
            num_correct += sum(1 for t, gold in zip(tagged, sequence.outcomes)
                               if t.outcome == gold)
        accuracy = num_correct / num_events
        logger.info(f"Stats: ({num_correct}/{num_events}) {accuracy}")
        return accuracy
