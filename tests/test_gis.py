from __future__ import annotations

import logging

import numpy as np
import pytest

from tagml.core.config import TrainingConfig
from tagml.core.exceptions import ConfigurationError
from tagml.indexing import Event, TwoPassIndexer
from tagml.model import ModelType
from tagml.training import GISTrainer, train


def _events() -> list:
    events = []
    for _ in range(3):
        events.append(Event("A", ("a", "common")))
        events.append(Event("B", ("b", "common")))
    events.append(Event("A", ("common",)))
    return events


def _config(**extra) -> TrainingConfig:
    params = {"Algorithm": "MAXENT", "Iterations": 30, "Cutoff": 1}
    params.update(extra)
    return TrainingConfig(params)


def test_gis_learns_separable_data() -> None:
    result = train(_events(), _config())
    model = result.model

    assert model.model_type is ModelType.GIS
    assert model.best_outcome(model.eval(["a", "common"])) == "A"
    assert model.best_outcome(model.eval(["b", "common"])) == "B"
    assert result.diagnostics.training_accuracy == pytest.approx(1.0)


def test_predicates_only_carry_observed_outcomes() -> None:
    model = train(_events(), _config()).model

    assert model.context_for("a").outcomes.tolist() == [0]
    assert model.context_for("b").outcomes.tolist() == [1]
    assert model.context_for("common").outcomes.tolist() == [0, 1]


def test_simple_smoothing_activates_every_outcome() -> None:
    model = train(_events(), _config(Smoothing=True)).model
    for context in model.params:
        assert context.outcomes.tolist() == [0, 1]


def test_log_likelihood_improves() -> None:
    diagnostics = train(_events(), _config()).diagnostics

    assert len(diagnostics.log_likelihoods) == 30
    assert diagnostics.iterations == 30
    assert diagnostics.log_likelihoods[-1] > diagnostics.log_likelihoods[0]
    assert diagnostics.log_likelihoods[0] == pytest.approx(7 * np.log(0.5))
    assert diagnostics.stop_reason == "max_iterations"


def test_gaussian_smoothing_keeps_weights_small() -> None:
    plain = train(_events(), _config()).model
    smoothed = train(_events(), _config(GaussianSmoothing=True, Sigma=0.5)).model

    plain_a = plain.context_for("a").parameters[0]
    smoothed_a = smoothed.context_for("a").parameters[0]
    assert np.isfinite(smoothed_a)
    assert 0 < smoothed_a < plain_a


def test_training_is_deterministic() -> None:
    first = train(_events(), _config())
    second = train(_events(), _config())

    assert first.model == second.model
    assert first.diagnostics.event_hash == second.diagnostics.event_hash


def test_train_indexed_with_real_values() -> None:
    events = [Event("A", ("a", "c"), (2.0, 1.0)), Event("B", ("b", "c"), (0.5, 1.0))] * 2
    indexed = TwoPassIndexer(cutoff=1).index(events)

    result = GISTrainer(_config()).train_indexed(indexed)

    assert result.diagnostics.num_events == 4
    assert result.diagnostics.num_unique_events == 2
    assert result.model.best_outcome(result.model.eval(["a"], [2.0])) == "A"


def test_gis_rejects_other_algorithms() -> None:
    with pytest.raises(ConfigurationError):
        GISTrainer(TrainingConfig({"Algorithm": "PERCEPTRON"}))


def test_gis_rejects_bad_sigma() -> None:
    with pytest.raises(ConfigurationError):
        GISTrainer(_config(GaussianSmoothing=True, Sigma=0))


def test_gis_logs_progress(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="tagml"):
        train(_events(), _config(Iterations=2))
    assert "loglikelihood" in caplog.text
