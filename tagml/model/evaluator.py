"""
Model evaluation

Turns the active predicates of one event into a distribution over outcomes.
The functions here are pure: they only read the (immutable) parameters and
write into the score vector they return, so any number of threads may call
them against the same model.
"""

from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from .context import Context
from .types import ModelType


def sum_features(contexts: Sequence[Optional[Context]],
                 values: Optional[Sequence[float]],
                 prior: NDArray[np.float64]) -> NDArray[np.float64]:
    """Add ``weight * value`` of every active predicate into ``prior``

    ``None`` entries stand for predicates the model does not know and
    contribute nothing. ``prior`` is updated in place and returned.
    """
    for ci, context in enumerate(contexts):
        if context is None:
            continue
        value = 1.0 if values is None else values[ci]
        prior[context.outcomes] += context.parameters * value
    return prior


def softmax_normalize(scores: NDArray[np.float64]) -> NDArray[np.float64]:
    """Log-linear normalization: exponentiate, then divide by the sum"""
    exps = np.exp(scores - np.max(scores))
    scores[:] = exps / np.sum(exps)
    return scores


def min_shift_normalize(scores: NDArray[np.float64]) -> NDArray[np.float64]:
    """Raw-score normalization used for perceptron models

    Subtracts the minimum, then divides by the sum. A zero sum (all scores
    equal) gives the uniform distribution.
    """
    shifted = scores - np.min(scores)
    total = np.sum(shifted)
    if total == 0:
        scores[:] = 1.0 / len(scores)
    else:
        scores[:] = shifted / total
    return scores


def normalize(scores: NDArray[np.float64], model_type: ModelType) -> NDArray[np.float64]:
    if model_type.is_maxent:
        return softmax_normalize(scores)
    return min_shift_normalize(scores)


def evaluate(params: Sequence[Context],
             num_outcomes: int,
             context_ids: Sequence[int],
             values: Optional[Sequence[float]] = None,
             prior: Optional[NDArray[np.float64]] = None,
             model_type: ModelType = ModelType.GIS) -> NDArray[np.float64]:
    """
    Outcome distribution for a set of active predicate ids

    Args:
        params: Per-predicate parameters, indexed by predicate id
        num_outcomes: Size of the returned vector
        context_ids: Active predicate ids; an empty set yields the prior only
        values: Optional real values parallel to ``context_ids``
        prior: Optional log prior the scores start from (zeros by default)
        model_type: Selects softmax (GIS, QN) or min-shift (perceptron) normalization

    Returns:
        Probability vector of length ``num_outcomes``
    """
    if prior is None:
        scores = np.zeros(num_outcomes, dtype=np.float64)
    else:
        scores = np.array(prior, dtype=np.float64)
    sum_features([params[pid] for pid in context_ids], values, scores)
    return normalize(scores, model_type)
