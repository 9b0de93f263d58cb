from __future__ import annotations

import math

import numpy as np
import pytest

from tagml.model import Context, Model, ModelType
from tagml.sequence import (
    BeamSearch,
    BioSequenceValidator,
    ContextGenerator,
    Sequence,
    SequenceValidator,
)

OUTCOMES = ["other", "person-start", "person-cont"]


class WordContext(ContextGenerator):
    """The current word plus the previous outcome"""

    def get_context(self, index, tokens, prior_outcomes, additional_context=None):
        previous = prior_outcomes[index - 1] if index > 0 else "bos"
        return [f"w={tokens[index]}", f"prev={previous}"]


class Rejecting(SequenceValidator):

    def __init__(self, banned: str):
        self.banned = banned

    def valid_sequence(self, index, tokens, outcomes, outcome) -> bool:
        return outcome != self.banned


def _model() -> Model:
    params = [
        Context([0, 1, 2], [0.0, 2.0, 2.5]),   # w=John, prefers person-cont
        Context([0, 1, 2], [0.0, 0.5, 2.0]),   # w=Smith
        Context([0, 1, 2], [2.0, 0.0, 0.0]),   # w=said
        Context([2], [1.0]),                   # prev=person-start
    ]
    labels = ["w=John", "w=Smith", "w=said", "prev=person-start"]
    return Model(params, labels, OUTCOMES, ModelType.GIS)


def _greedy(model: Model, tokens) -> list:
    outcomes: list = []
    generator = WordContext()
    for i in range(len(tokens)):
        probs = model.eval(generator.get_context(i, tokens, outcomes))
        outcomes.append(model.best_outcome(probs))
    return outcomes


def test_beam_of_one_is_greedy() -> None:
    model = _model()
    tokens = ["John", "Smith", "said"]

    best = BeamSearch(1, model).best_sequence(tokens, WordContext())

    assert best.outcomes == _greedy(model, tokens)


def test_score_is_sum_of_log_probabilities() -> None:
    best = BeamSearch(3, _model()).best_sequence(["John", "said"], WordContext())

    assert len(best) == 2
    assert best.score == pytest.approx(sum(math.log(p) for p in best.probs))


def test_validator_excludes_illegal_outcomes() -> None:
    model = _model()
    tokens = ["John", "Smith", "said"]
    generator = WordContext()

    unconstrained = BeamSearch(3, model).best_sequence(tokens, generator)
    assert unconstrained.outcomes[0] == "person-cont"

    constrained = BeamSearch(3, model).best_sequence(tokens, generator, BioSequenceValidator())
    assert constrained.outcomes == ["person-start", "person-cont", "other"]

    never_other = BeamSearch(3, model).best_sequences(3, tokens, generator, Rejecting("other"))
    for sequence in never_other:
        assert "other" not in sequence.outcomes


def test_sequences_are_ordered_best_first() -> None:
    sequences = BeamSearch(3, _model()).best_sequences(3, ["John", "Smith"], WordContext())

    assert len(sequences) == 3
    scores = [sequence.score for sequence in sequences]
    assert scores == sorted(scores, reverse=True)


def test_empty_input_gives_one_empty_sequence() -> None:
    sequences = BeamSearch(3, _model()).best_sequences(2, [], WordContext())
    assert sequences == [Sequence()]
    assert len(sequences[0]) == 0


def test_min_sequence_score_prunes() -> None:
    sequences = BeamSearch(3, _model()).best_sequences(3, ["John"], WordContext(),
                                                      min_sequence_score=-0.6)
    assert len(sequences) == 1
    assert sequences[0].outcomes == ["person-cont"]


def test_cache_gives_same_results() -> None:
    model = _model()
    tokens = ["John", "Smith", "said", "John"]

    cached = BeamSearch(3, model, cache_size=10)
    uncached = BeamSearch(3, model)

    assert cached.best_sequences(3, tokens, WordContext()) == \
        uncached.best_sequences(3, tokens, WordContext())
    assert len(cached.contexts_cache) > 0
    assert uncached.contexts_cache is None


def test_beam_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BeamSearch(0, _model())


def test_sequence_extend_returns_a_new_sequence() -> None:
    start = Sequence()
    extended = start.extend("other", 0.5)

    assert len(start) == 0
    assert extended.outcomes == ["other"]
    assert extended.probs == [0.5]
    assert extended.score == pytest.approx(math.log(0.5))
    assert Sequence(["other"], [0.5]) == extended


class PreviousOutcomeModel:
    """Outcome probabilities keyed by the previous outcome"""

    outcomes = ["A", "B", "C"]
    table = {
        "bos": [0.55, 0.45, 0.0],
        "A": [0.1, 0.1, 0.8],
        "B": [0.35, 0.35, 0.3],
    }

    def eval(self, contexts):
        return np.array(self.table[contexts[0]])

    def outcome(self, index: int) -> str:
        return self.outcomes[index]


class PreviousOutcomeContext(ContextGenerator):

    def get_context(self, index, tokens, prior_outcomes, additional_context=None):
        return [prior_outcomes[index - 1] if index > 0 else "bos"]


class NoCAfterAOnlyCAfterB(SequenceValidator):

    def valid_sequence(self, index, tokens, outcomes, outcome) -> bool:
        if not outcomes:
            return True
        if outcomes[-1] == "A":
            return outcome != "C"
        return outcome == "C"


def test_all_outcomes_are_only_tried_when_the_position_is_empty() -> None:
    search = BeamSearch(2, PreviousOutcomeModel())

    sequences = search.best_sequences(2, ["x", "y"], PreviousOutcomeContext(),
                                      NoCAfterAOnlyCAfterB())

    # "B" has no legal outcome among its top two, but "A" already filled the position
    assert [sequence.outcomes for sequence in sequences] == [["A", "A"], ["A", "B"]]
    assert sequences[0].score == pytest.approx(math.log(0.55) + math.log(0.1))


def test_all_outcomes_are_tried_when_nothing_survives() -> None:
    search = BeamSearch(1, PreviousOutcomeModel())

    # after "A" only "C" is in the beam and it is illegal
    best = search.best_sequence(["x", "y"], PreviousOutcomeContext(), NoCAfterAOnlyCAfterB())

    assert best.outcomes == ["A", "A"]
    assert best.score == pytest.approx(math.log(0.55) + math.log(0.1))
