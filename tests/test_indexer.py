from __future__ import annotations

import pytest

from tagml.core.config import TrainingConfig
from tagml.core.exceptions import (
    ConfigurationError,
    InconsistentEventStreamError,
    InsufficientTrainingDataError,
    UnsupportedOperationError,
)
from tagml.indexing import Event, EventStream, OnePassIndexer, TwoPassIndexer, create_indexer


def _events() -> list:
    return [
        Event("A", ("x", "y")),
        Event("A", ("x", "y")),
        Event("B", ("y", "z")),
    ]


def test_merged_patterns_account_for_every_event() -> None:
    indexed = TwoPassIndexer(cutoff=1).index(_events())

    assert indexed.num_events == 3
    assert indexed.num_unique_events == 2
    assert int(indexed.num_times_events_seen.sum()) == indexed.num_events
    assert indexed.outcome_labels == ("A", "B")
    assert indexed.pred_labels == ("x", "y", "z")


def test_predicate_ids_are_sorted_within_a_pattern() -> None:
    indexed = TwoPassIndexer(cutoff=1).index([Event("A", ("z", "x", "y"))])
    assert indexed.contexts[0].tolist() == [0, 1, 2]


def test_cutoff_drops_rare_predicates() -> None:
    indexed = TwoPassIndexer(cutoff=2).index(_events())

    assert indexed.pred_labels == ("x", "y")
    assert indexed.pred_counts.tolist() == [2, 3]
    # the B event keeps only y
    b_pattern = indexed.outcome_list.tolist().index(1)
    assert indexed.contexts[b_pattern].tolist() == [1]


def test_events_without_predicates_are_kept() -> None:
    events = [Event("A", ("x",)), Event("A", ("x",)), Event("B", ("rare",)), Event("C", ())]
    indexed = TwoPassIndexer(cutoff=2).index(events)

    assert indexed.num_events == 4
    assert sorted(len(c) for c in indexed.contexts) == [0, 0, 1]
    assert indexed.outcome_labels == ("A", "B", "C")


def test_two_pass_needs_a_restartable_stream() -> None:
    with pytest.raises(UnsupportedOperationError):
        TwoPassIndexer(cutoff=1).index(e for e in _events())


def test_one_pass_reads_a_generator_once() -> None:
    indexed = OnePassIndexer(cutoff=1).index(e for e in _events())

    # no merging by default
    assert indexed.num_unique_events == 3
    assert indexed.num_times_events_seen.tolist() == [1, 1, 1]
    assert indexed.outcome_list.tolist() == [0, 0, 1]


def test_no_events_is_an_error() -> None:
    with pytest.raises(InsufficientTrainingDataError):
        TwoPassIndexer(cutoff=1).index([])
    with pytest.raises(InsufficientTrainingDataError):
        OnePassIndexer(cutoff=1).index([])


def test_real_values_follow_their_predicates() -> None:
    events = [Event("A", ("y", "x"), (2.0, 0.5))]
    indexed = OnePassIndexer(cutoff=1).index(events)

    assert indexed.pred_labels == ("y", "x")
    assert indexed.contexts[0].tolist() == [0, 1]
    assert indexed.value_at(0).tolist() == [2.0, 0.5]


def test_entries_flatten_all_patterns() -> None:
    indexed = OnePassIndexer(cutoff=1).index(_events())
    entries = indexed.entries

    assert entries.indptr.tolist() == [0, 2, 4, 6]
    assert entries.rows.tolist() == [0, 0, 1, 1, 2, 2]
    assert entries.cols.tolist() == [0, 1, 0, 1, 1, 2]
    assert entries.vals.tolist() == [1.0] * 6


def test_event_hash_is_stable() -> None:
    first = TwoPassIndexer(cutoff=1).index(_events())
    second = TwoPassIndexer(cutoff=1).index(_events())
    assert first.event_hash() == second.event_hash()


def test_create_indexer_from_config() -> None:
    indexer = create_indexer(TrainingConfig({"DataIndexer": "OnePass", "Cutoff": 3}))
    assert isinstance(indexer, OnePassIndexer)
    assert indexer.cutoff == 3
    assert indexer.sort is False

    indexer = create_indexer(TrainingConfig({"Sort": False}))
    assert isinstance(indexer, TwoPassIndexer)
    assert indexer.sort is False

    with pytest.raises(ConfigurationError):
        create_indexer(TrainingConfig({"DataIndexer": "ThreePass"}))


class ShrinkingStream(EventStream):
    """Drops its last event every time it is reset"""

    restartable = True

    def __init__(self, events):
        self.events = list(events)

    def __iter__(self):
        return iter(self.events)

    def reset(self) -> None:
        self.events.pop()


def test_two_pass_rejects_a_stream_that_changes_between_passes() -> None:
    with pytest.raises(InconsistentEventStreamError):
        TwoPassIndexer(cutoff=1).index(ShrinkingStream(_events()))
