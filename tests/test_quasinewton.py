from __future__ import annotations

import math

import numpy as np
import pytest

from tagml.core.config import TrainingConfig
from tagml.core.exceptions import ConfigurationError, InvalidArgumentError
from tagml.indexing import Event, OnePassIndexer, TwoPassIndexer
from tagml.model import ModelType
from tagml.training import QNTrainer, train
from tagml.training.quasinewton import (
    Function,
    LineSearchResult,
    NegLogLikelihood,
    ParallelNegLogLikelihood,
    QNMinimizer,
    do_line_search,
)


class Quadratic(Function):
    """sum((x - center)^2)"""

    def __init__(self, center):
        self.center = np.asarray(center, dtype=np.float64)

    @property
    def dimension(self) -> int:
        return len(self.center)

    def value_at(self, x):
        return float(np.sum((x - self.center) ** 2))

    def gradient_at(self, x):
        return 2 * (x - self.center)


def _small_indexed():
    events = [Event("A", ("x",)), Event("B", ("x", "y"))]
    return OnePassIndexer(cutoff=1).index(events)


def _events() -> list:
    events = []
    for i in range(4):
        events.append(Event("A", ("a", "common", f"id{i % 2}")))
        events.append(Event("B", ("b", "common", f"id{i % 2}")))
    events.append(Event("C", ("c", "common")))
    return events


def test_value_and_gradient_by_hand() -> None:
    objective = NegLogLikelihood(_small_indexed())
    assert objective.dimension == 4
    x0 = objective.initial_point()
    assert x0.tolist() == [0.0] * 4

    assert objective.value_at(x0) == pytest.approx(2 * math.log(2))
    # layout: [A.x, A.y, B.x, B.y]
    assert objective.gradient_at(x0).tolist() == pytest.approx([0.0, 0.5, 0.0, -0.5])

    x = np.array([0.0, 0.0, 0.0, 1.0])
    assert objective.value_at(x) == pytest.approx(math.log(2) + math.log(1 + math.e) - 1)
    assert objective.index_of(1, 1) == 3


def test_gradient_matches_finite_differences() -> None:
    indexed = TwoPassIndexer(cutoff=1).index(_events())
    objective = NegLogLikelihood(indexed)
    rng = np.random.default_rng(7)
    x = rng.normal(size=objective.dimension)

    gradient = objective.gradient_at(x)
    eps = 1e-6
    for i in range(objective.dimension):
        step = np.zeros(objective.dimension)
        step[i] = eps
        numeric = (objective.value_at(x + step) - objective.value_at(x - step)) / (2 * eps)
        assert gradient[i] == pytest.approx(numeric, abs=1e-4)


def test_parallel_objective_equals_sequential() -> None:
    indexed = TwoPassIndexer(cutoff=1).index(_events())
    sequential = NegLogLikelihood(indexed)
    x = np.linspace(-1, 1, sequential.dimension)

    with ParallelNegLogLikelihood(indexed, 3) as parallel:
        assert parallel.value_at(x) == pytest.approx(sequential.value_at(x))
        assert parallel.gradient_at(x).tolist() == \
            pytest.approx(sequential.gradient_at(x).tolist())


def test_parallel_objective_reuses_one_pool_until_closed() -> None:
    indexed = TwoPassIndexer(cutoff=1).index(_events())
    parallel = ParallelNegLogLikelihood(indexed, 2)
    x = np.zeros(parallel.dimension)

    executor = parallel._executor
    first = parallel.value_at(x)
    parallel.gradient_at(x)
    assert parallel.value_at(x) == first
    assert parallel._executor is executor

    parallel.close()
    with pytest.raises(RuntimeError):
        parallel.value_at(x)


def test_parallel_ranges_give_remainder_to_last_worker() -> None:
    indexed = OnePassIndexer(cutoff=1).index(_events())
    with ParallelNegLogLikelihood(indexed, 2) as parallel:
        assert parallel.ranges() == [(0, 4), (4, 9)]

    with pytest.raises(InvalidArgumentError):
        ParallelNegLogLikelihood(indexed, 0)


def test_wrong_dimension_is_rejected() -> None:
    objective = NegLogLikelihood(_small_indexed())
    with pytest.raises(InvalidArgumentError):
        objective.value_at(np.zeros(3))
    with pytest.raises(InvalidArgumentError):
        objective.gradient_at(np.zeros(5))


def test_line_search_decreases_the_function() -> None:
    function = Quadratic([1.0, 1.0])
    x = np.zeros(2)
    lsr = LineSearchResult.initial(function.value_at(x), function.gradient_at(x), x)

    do_line_search(function, -function.gradient_at(x), lsr, 1.0)

    assert lsr.value_at_next < lsr.value_at_curr
    assert lsr.fct_eval_count >= 1
    assert lsr.func_change_rate > 0


def test_minimizer_finds_quadratic_minimum() -> None:
    minimizer = QNMinimizer()
    x = minimizer.minimize(Quadratic([1.0, -2.0, 3.0]))

    assert x.tolist() == pytest.approx([1.0, -2.0, 3.0], abs=1e-3)
    assert minimizer.iterations_run < 100
    assert len(minimizer.values) == minimizer.iterations_run


def test_minimizer_l2_shrinks_towards_zero() -> None:
    x = QNMinimizer(l2_cost=1.0).minimize(Quadratic([3.0]))
    assert x[0] == pytest.approx(1.5, abs=1e-3)


def test_minimizer_l1_zeroes_weak_coordinates() -> None:
    x = QNMinimizer(l1_cost=1.0).minimize(Quadratic([0.1, 3.0]))
    assert x[0] == 0.0
    assert x[1] == pytest.approx(2.5, abs=1e-2)


def test_minimizer_rejects_bad_arguments() -> None:
    with pytest.raises(InvalidArgumentError):
        QNMinimizer(l1_cost=-1)
    with pytest.raises(InvalidArgumentError):
        QNMinimizer(iterations=0)
    with pytest.raises(InvalidArgumentError):
        QNMinimizer(m=0)


def _config(**extra) -> TrainingConfig:
    params = {"Algorithm": "MAXENT_QN", "Iterations": 50, "Cutoff": 1}
    params.update(extra)
    return TrainingConfig(params)


def test_qn_trainer_learns_separable_data() -> None:
    result = train(_events(), _config())
    model = result.model

    assert model.model_type is ModelType.QN
    assert result.diagnostics.training_accuracy == pytest.approx(1.0)
    assert model.best_outcome(model.eval(["c", "common"])) == "C"
    for context in model.params:
        assert context.outcomes.tolist() == [0, 1, 2]


def test_qn_log_likelihood_increases() -> None:
    diagnostics = train(_events(), _config()).diagnostics
    assert diagnostics.log_likelihoods[-1] > diagnostics.log_likelihoods[0]
    assert len(diagnostics.accuracies) == diagnostics.iterations


def test_qn_parallel_training_predicts_like_sequential() -> None:
    sequential = train(_events(), _config()).model
    parallel_result = train(_events(), _config(Threads=2))
    parallel = parallel_result.model

    assert parallel_result.diagnostics.training_accuracy == pytest.approx(1.0)
    for event in _events():
        assert parallel.best_outcome(parallel.eval(event.context)) == \
            sequential.best_outcome(sequential.eval(event.context))


def test_qn_parallel_training_shuts_its_pool_down(monkeypatch) -> None:
    closed = []
    close = ParallelNegLogLikelihood.close

    def recording_close(objective) -> None:
        closed.append(objective)
        close(objective)

    monkeypatch.setattr(ParallelNegLogLikelihood, "close", recording_close)
    train(_events(), _config(Threads=2))

    assert len(closed) == 1


def test_qn_with_l1_and_l2() -> None:
    result = train(_events(), _config(L1COST=0.1, L2COST=0.1))
    assert result.diagnostics.training_accuracy == pytest.approx(1.0)


def test_qn_trainer_rejects_negative_costs() -> None:
    with pytest.raises(ConfigurationError):
        QNTrainer(_config(L1COST=-1))
