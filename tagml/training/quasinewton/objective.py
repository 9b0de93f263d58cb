"""
Negative log-likelihood of a maxent model and its gradient

The parameter vector is the flattened ``numOutcomes x numFeatures`` weight
matrix; the weight of (outcome, feature) lives at
``outcome * numFeatures + feature``.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Tuple

import numpy as np
from numpy.typing import NDArray

from ...core.exceptions import InvalidArgumentError
from ...indexing.indexer import IndexedEvents

logger = logging.getLogger(__name__)


def log_sum_exp(scores: NDArray[np.float64]) -> NDArray[np.float64]:
    """Row-wise ``log(sum(exp(scores)))`` without overflow"""
    top = np.max(scores, axis=1)
    return top + np.log(np.sum(np.exp(scores - top[:, None]), axis=1))


class Function:
    """A differentiable function of a real vector"""

    @property
    def dimension(self) -> int:
        raise NotImplementedError

    def value_at(self, x: NDArray[np.float64]) -> float:
        raise NotImplementedError

    def gradient_at(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        raise NotImplementedError

    def initial_point(self) -> NDArray[np.float64]:
        return np.zeros(self.dimension, dtype=np.float64)

    def check_dimension(self, x: NDArray[np.float64]) -> None:
        if len(x) != self.dimension:
            raise InvalidArgumentError(
                f"x is invalid, its dimension {len(x)} is not equal to "
                f"the domain dimension {self.dimension}.")


class NegLogLikelihood(Function):
    """Training-set negative log-likelihood, computed over all patterns at once"""

    def __init__(self, indexed: IndexedEvents):
        self.entries = indexed.entries
        self.outcome_list = indexed.outcome_list.astype(np.int64)
        self.num_times_events_seen = indexed.num_times_events_seen.astype(np.float64)
        self.num_outcomes = indexed.num_outcomes
        self.num_features = indexed.num_predicates
        self.num_contexts = indexed.num_unique_events
        self._dimension = self.num_outcomes * self.num_features

    @property
    def dimension(self) -> int:
        return self._dimension

    def index_of(self, outcome_id: int, feature_id: int) -> int:
        return outcome_id * self.num_features + feature_id

    # ------------------------------------------------------------------
    # range kernels, shared with the parallel variant
    # ------------------------------------------------------------------

    def _scores(self, x: NDArray[np.float64], start: int, end: int):
        """Per-outcome weight sums of the patterns in ``[start, end)``"""
        lo, hi = self.entries.indptr[start], self.entries.indptr[end]
        rows = self.entries.rows[lo:hi] - start
        cols = self.entries.cols[lo:hi]
        vals = self.entries.vals[lo:hi]
        weights = x.reshape(self.num_outcomes, self.num_features)
        scores = np.zeros((end - start, self.num_outcomes), dtype=np.float64)
        np.add.at(scores, rows, weights[:, cols].T * vals[:, None])
        return scores, rows, cols, vals

    def _value_range(self, x: NDArray[np.float64], start: int, end: int) -> float:
        if end <= start:
            return 0.0
        scores, _, _, _ = self._scores(x, start, end)
        outcomes = self.outcome_list[start:end]
        true_scores = scores[np.arange(end - start), outcomes]
        seen = self.num_times_events_seen[start:end]
        return float(-np.sum((true_scores - log_sum_exp(scores)) * seen))

    def _gradient_range(self, x: NDArray[np.float64], start: int, end: int) -> NDArray[np.float64]:
        gradient = np.zeros((self.num_features, self.num_outcomes), dtype=np.float64)
        if end > start:
            scores, rows, cols, vals = self._scores(x, start, end)
            expectation = np.exp(scores - log_sum_exp(scores)[:, None])
            expectation[np.arange(end - start), self.outcome_list[start:end]] -= 1.0
            expectation *= self.num_times_events_seen[start:end, None]
            np.add.at(gradient, cols, expectation[rows] * vals[:, None])
        # feature-major accumulation, outcome-major result
        return np.ascontiguousarray(gradient.T).reshape(-1)

    # ------------------------------------------------------------------

    def value_at(self, x: NDArray[np.float64]) -> float:
        self.check_dimension(x)
        return self._value_range(x, 0, self.num_contexts)

    def gradient_at(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        self.check_dimension(x)
        return self._gradient_range(x, 0, self.num_contexts)

    def accuracy(self, x: NDArray[np.float64]) -> float:
        """Training accuracy of the model given by ``x``"""
        self.check_dimension(x)
        scores, _, _, _ = self._scores(x, 0, self.num_contexts)
        correct = np.argmax(scores, axis=1) == self.outcome_list
        seen = self.num_times_events_seen
        return float(np.sum(seen[correct]) / np.sum(seen))


class ParallelNegLogLikelihood(NegLogLikelihood):
    """
    Same objective, with the pattern range split across worker threads

    Every call partitions the patterns into ``threads`` contiguous ranges
    (the last one takes the remainder), evaluates them on a pool of
    ``threads`` workers and sums the partial results once all workers have
    finished. The pool lives until :meth:`close`.
    """

    def __init__(self, indexed: IndexedEvents, threads: int):
        if threads <= 0:
            raise InvalidArgumentError(f"Number of threads must 1 or larger, got {threads}")
        super().__init__(indexed)
        self.threads = threads
        self._executor = ThreadPoolExecutor(max_workers=threads, thread_name_prefix='tagml-nll')

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> 'ParallelNegLogLikelihood':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def ranges(self) -> List[Tuple[int, int]]:
        task_size = self.num_contexts // self.threads
        left_over = self.num_contexts % self.threads
        ranges = []
        for i in range(self.threads):
            start = i * task_size
            length = task_size + left_over if i == self.threads - 1 else task_size
            ranges.append((start, start + length))
        return ranges

    def _map(self, kernel, x: NDArray[np.float64]) -> list:
        futures = [self._executor.submit(kernel, x, start, end) for start, end in self.ranges()]
        return [future.result() for future in futures]

    def value_at(self, x: NDArray[np.float64]) -> float:
        self.check_dimension(x)
        return float(sum(self._map(self._value_range, x)))

    def gradient_at(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        self.check_dimension(x)
        gradient = np.zeros(self.dimension, dtype=np.float64)
        for partial in self._map(self._gradient_range, x):
            gradient += partial
        return gradient
