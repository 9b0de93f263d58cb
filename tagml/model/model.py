"""
Fitted classifier: parameters, frozen predicate map and outcome labels
"""

import logging
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from .context import Context
from .evaluator import evaluate, normalize, sum_features
from .types import ModelType

logger = logging.getLogger(__name__)


class Model:
    """
    Immutable linear model over (predicate, outcome) features

    The model is shared read-only by evaluators and beam-search decoders;
    nothing mutates it after construction.
    """

    def __init__(self,
                 params: Sequence[Context],
                 pred_labels: Sequence[str],
                 outcome_labels: Sequence[str],
                 model_type: ModelType = ModelType.GIS):
        if len(params) != len(pred_labels):
            raise ValueError(
                f"{len(pred_labels)} predicate labels for {len(params)} parameter contexts")

        self.model_type = model_type
        self._params = tuple(params)
        self._pred_labels = tuple(pred_labels)
        self._outcome_labels = tuple(outcome_labels)
        self._pmap: Mapping[str, int] = MappingProxyType(
            {label: pid for pid, label in enumerate(self._pred_labels)})
        self._outcome_index = {label: oid for oid, label in enumerate(self._outcome_labels)}

        for label, context in zip(self._pred_labels, self._params):
            if len(context) and int(np.max(context.outcomes)) >= len(self._outcome_labels):
                raise ValueError(f"Predicate {label!r} refers to an unknown outcome id")

    # ------------------------------------------------------------------
    # structure
    # ------------------------------------------------------------------

    @property
    def params(self) -> Sequence[Context]:
        return self._params

    @property
    def pred_labels(self) -> Sequence[str]:
        return self._pred_labels

    @property
    def outcome_labels(self) -> Sequence[str]:
        return self._outcome_labels

    @property
    def predicate_index(self) -> Mapping[str, int]:
        return self._pmap

    @property
    def num_outcomes(self) -> int:
        return len(self._outcome_labels)

    @property
    def num_predicates(self) -> int:
        return len(self._pred_labels)

    def context_for(self, predicate: str) -> Optional[Context]:
        pid = self._pmap.get(predicate)
        return None if pid is None else self._params[pid]

    # ------------------------------------------------------------------
    # evaluation
    # ------------------------------------------------------------------

    def eval(self, context: Sequence[str],
             values: Optional[Sequence[float]] = None,
             prior: Optional[NDArray[np.float64]] = None) -> NDArray[np.float64]:
        """Outcome distribution for predicate labels; unknown labels are ignored"""
        if values is not None and len(values) != len(context):
            raise ValueError(f"{len(values)} values for {len(context)} predicates")
        contexts = [self.context_for(predicate) for predicate in context]
        if prior is None:
            scores = np.zeros(self.num_outcomes, dtype=np.float64)
        else:
            scores = np.array(prior, dtype=np.float64)
        sum_features(contexts, values, scores)
        return normalize(scores, self.model_type)

    def eval_ids(self, context_ids: Sequence[int],
                 values: Optional[Sequence[float]] = None,
                 prior: Optional[NDArray[np.float64]] = None) -> NDArray[np.float64]:
        """Outcome distribution for already resolved predicate ids"""
        return evaluate(self._params, self.num_outcomes, context_ids, values, prior,
                        self.model_type)

    def best_outcome(self, probs: Sequence[float]) -> str:
        """Label of the most probable outcome, the first one on ties"""
        return self._outcome_labels[int(np.argmax(probs))]

    def outcome(self, index: int) -> str:
        return self._outcome_labels[index]

    def index_of(self, outcome: str) -> int:
        """Outcome id of a label, -1 when the model has no such outcome"""
        return self._outcome_index.get(outcome, -1)

    def all_outcomes(self, probs: Sequence[float]) -> str:
        """Human readable ``label[prob]`` listing of a distribution"""
        if len(probs) != self.num_outcomes:
            raise ValueError(
                f"Distribution has {len(probs)} entries, model has {self.num_outcomes} outcomes")
        return ' '.join(f"{label}[{prob:.4f}]"
                        for label, prob in zip(self._outcome_labels, probs))

    # ------------------------------------------------------------------

    def compacted(self) -> 'Model':
        """Copy without zero weights and without predicates left empty"""
        params: List[Context] = []
        labels: List[str] = []
        for label, context in zip(self._pred_labels, self._params):
            keep = context.parameters != 0
            if not np.any(keep):
                continue
            params.append(Context(context.outcomes[keep], context.parameters[keep]))
            labels.append(label)
        if len(labels) != len(self._pred_labels):
            logger.debug(f"Compacted {len(self._pred_labels)} predicates to {len(labels)}")
        return Model(params, labels, self._outcome_labels, self.model_type)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Model):
            return NotImplemented
        if (self.model_type is not other.model_type
                or self._outcome_labels != other._outcome_labels
                or set(self._pmap) != set(other._pmap)):
            return False
        return all(self._params[pid] == other._params[other._pmap[label]]
                   for label, pid in self._pmap.items())

    def __hash__(self) -> int:
        return hash((self.model_type, self._outcome_labels, len(self._pred_labels)))

    def __repr__(self) -> str:
        return (f"Model(type={self.model_type.value}, outcomes={self.num_outcomes}, "
                f"predicates={self.num_predicates})")
