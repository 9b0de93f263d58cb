"""
Event indexing

Turns a stream of :class:`Event` objects into the compact, integer indexed
arrays the trainers work on. Two strategies are available:

- :class:`TwoPassIndexer` counts predicates in a first pass over the
  stream, freezes the predicate map and indexes in a second pass. The
  stream has to be restartable.
- :class:`OnePassIndexer` reads the stream exactly once and keeps the
  events in memory while the maps are built.

Both drop predicates seen fewer than ``cutoff`` times and, when sorting is
enabled, merge identical events into one pattern whose
``num_times_events_seen`` counts how many raw events it stands for.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ..core.config import (
    CUTOFF_DEFAULT,
    CUTOFF_PARAM,
    DATA_INDEXER_ONE_PASS,
    DATA_INDEXER_PARAM,
    DATA_INDEXER_TWO_PASS,
    SORT_PARAM,
    TrainingConfig,
)
from ..core.exceptions import (
    ConfigurationError,
    InconsistentEventStreamError,
    InsufficientTrainingDataError,
)
from .events import Event, EventStream, as_event_stream

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PatternEntries:
    """Sparse (CSR) view of the patterns used by the vectorized trainers

    Entries of pattern ``i`` live in ``indptr[i]:indptr[i + 1]``; ``rows``
    repeats the pattern index for every entry.
    """
    indptr: NDArray[np.int64]
    rows: NDArray[np.int64]
    cols: NDArray[np.int64]
    vals: NDArray[np.float64]


@dataclass(frozen=True, eq=False)
class IndexedEvents:
    """Trainer-facing form of a training set

    ``contexts[i]`` holds the sorted predicate ids of distinct pattern ``i``,
    ``outcome_list[i]`` its outcome id and ``num_times_events_seen[i]`` how
    many raw events were merged into it. ``values`` is None for binary
    features; otherwise ``values[i]`` is parallel to ``contexts[i]`` (or None
    when that event carried no values).
    """
    contexts: Tuple[NDArray[np.int32], ...]
    outcome_list: NDArray[np.int32]
    num_times_events_seen: NDArray[np.int32]
    pred_labels: Tuple[str, ...]
    outcome_labels: Tuple[str, ...]
    pred_counts: NDArray[np.int32]
    num_events: int
    values: Optional[Tuple[Optional[NDArray[np.float64]], ...]] = None

    @property
    def num_unique_events(self) -> int:
        return len(self.contexts)

    @property
    def num_outcomes(self) -> int:
        return len(self.outcome_labels)

    @property
    def num_predicates(self) -> int:
        return len(self.pred_labels)

    def value_at(self, i: int) -> Optional[NDArray[np.float64]]:
        """Values of pattern ``i`` (None means 1.0 for every predicate)"""
        if self.values is None:
            return None
        return self.values[i]

    @cached_property
    def entries(self) -> PatternEntries:
        """All (pattern, predicate, value) triples as flat arrays"""
        lengths = np.array([len(context) for context in self.contexts], dtype=np.int64)
        indptr = np.zeros(len(self.contexts) + 1, dtype=np.int64)
        np.cumsum(lengths, out=indptr[1:])
        rows = np.repeat(np.arange(len(self.contexts), dtype=np.int64), lengths)
        if self.contexts:
            cols = np.concatenate([np.asarray(c, dtype=np.int64) for c in self.contexts])
        else:
            cols = np.zeros(0, dtype=np.int64)
        if self.values is None:
            vals = np.ones(len(cols), dtype=np.float64)
        else:
            vals = np.concatenate([
                np.ones(len(c), dtype=np.float64) if v is None else np.asarray(v, dtype=np.float64)
                for c, v in zip(self.contexts, self.values)
            ]) if self.contexts else np.zeros(0, dtype=np.float64)
        return PatternEntries(indptr=indptr, rows=rows, cols=cols, vals=vals)

    def event_hash(self) -> str:
        """Stable hash of the indexed training data, for diagnostics"""
        digest = hashlib.sha256()
        for label in self.outcome_labels:
            digest.update(label.encode('utf-8') + b'\x00')
        for label in self.pred_labels:
            digest.update(label.encode('utf-8') + b'\x00')
        for i, context in enumerate(self.contexts):
            digest.update(context.tobytes())
            digest.update(int(self.outcome_list[i]).to_bytes(4, 'big'))
            digest.update(int(self.num_times_events_seen[i]).to_bytes(4, 'big'))
            values = self.value_at(i)
            if values is not None:
                digest.update(values.tobytes())
        return digest.hexdigest()[:16]


@dataclass
class _IndexedEvent:
    outcome: int
    predicates: Tuple[int, ...]
    values: Optional[Tuple[float, ...]]
    seen: int = 1

    def sort_key(self):
        return (self.outcome, self.predicates, self.values or ())


def _freeze_int_array(items) -> NDArray[np.int32]:
    array = np.asarray(items, dtype=np.int32)
    array.setflags(write=False)
    return array


def _freeze_float_array(items) -> NDArray[np.float64]:
    array = np.asarray(items, dtype=np.float64)
    array.setflags(write=False)
    return array


class DataIndexer:
    """Shared machinery of the indexing strategies"""

    name = 'abstract'
    sort_default = True

    def __init__(self, cutoff: int = CUTOFF_DEFAULT, sort: Optional[bool] = None):
        if cutoff < 0:
            raise ConfigurationError(f"cutoff must not be negative, got {cutoff}")
        self.cutoff = cutoff
        self.sort = self.sort_default if sort is None else sort

    def index(self, events) -> IndexedEvents:
        raise NotImplementedError

    # ------------------------------------------------------------------

    def _count_predicates(self, events: Iterable[Event]) -> Tuple[int, Dict[str, int]]:
        """Count predicate occurrences; returns (event count, counts)"""
        counter: Dict[str, int] = {}
        num_events = 0
        for event in events:
            num_events += 1
            for predicate in event.context:
                counter[predicate] = counter.get(predicate, 0) + 1
        return num_events, counter

    def _predicate_index(self, counter: Dict[str, int]) -> Tuple[Dict[str, int], List[int]]:
        """Ids for the predicates that reach the cutoff, in first-seen order"""
        predicate_index: Dict[str, int] = {}
        pred_counts: List[int] = []
        for predicate, count in counter.items():
            if count >= self.cutoff:
                predicate_index[predicate] = len(predicate_index)
                pred_counts.append(count)
        return predicate_index, pred_counts

    def _index_events(self, events: Iterable[Event],
                      predicate_index: Dict[str, int]) -> Tuple[List[_IndexedEvent], Dict[str, int]]:
        outcome_index: Dict[str, int] = {}
        indexed: List[_IndexedEvent] = []
        for event in events:
            outcome_id = outcome_index.setdefault(event.outcome, len(outcome_index))

            ids: Dict[int, float] = {}
            for position, predicate in enumerate(event.context):
                pid = predicate_index.get(predicate)
                if pid is not None and pid not in ids:
                    ids[pid] = event.values[position] if event.values is not None else 1.0

            if not ids:
                logger.debug(f"Event without active predicates: {event}")

            order = sorted(ids)
            values = tuple(ids[pid] for pid in order) if event.values is not None else None
            indexed.append(_IndexedEvent(outcome_id, tuple(order), values))
        return indexed, outcome_index

    def _sort_and_merge(self, indexed: List[_IndexedEvent]) -> List[_IndexedEvent]:
        if not indexed:
            raise InsufficientTrainingDataError("Insufficient training data to create model.")
        if not self.sort:
            return indexed

        indexed = sorted(indexed, key=_IndexedEvent.sort_key)
        merged = [indexed[0]]
        for event in indexed[1:]:
            champion = merged[-1]
            if event.sort_key() == champion.sort_key():
                champion.seen += 1
            else:
                merged.append(event)
        logger.info(f"Reduced {len(indexed)} events to {len(merged)}.")
        return merged

    def _build(self, indexed: List[_IndexedEvent], num_events: int,
               predicate_index: Dict[str, int], pred_counts: List[int],
               outcome_index: Dict[str, int]) -> IndexedEvents:
        patterns = self._sort_and_merge(indexed)

        has_values = any(event.values is not None for event in patterns)
        values = None
        if has_values:
            values = tuple(
                _freeze_float_array(event.values) if event.values is not None else None
                for event in patterns
            )

        result = IndexedEvents(
            contexts=tuple(_freeze_int_array(event.predicates) for event in patterns),
            outcome_list=_freeze_int_array([event.outcome for event in patterns]),
            num_times_events_seen=_freeze_int_array([event.seen for event in patterns]),
            pred_labels=tuple(predicate_index),
            outcome_labels=tuple(outcome_index),
            pred_counts=_freeze_int_array(pred_counts),
            num_events=num_events,
            values=values,
        )
        logger.info(f"Done indexing: {result.num_events} events, "
                    f"{result.num_unique_events} patterns, "
                    f"{result.num_outcomes} outcomes, {result.num_predicates} predicates")
        return result


class TwoPassIndexer(DataIndexer):
    """Counts predicates in a first pass, indexes in a second one

    The event stream is read twice, so it must support ``reset()``.
    """

    name = DATA_INDEXER_TWO_PASS
    sort_default = True

    def index(self, events) -> IndexedEvents:
        stream: EventStream = as_event_stream(events)
        logger.info(f"Indexing events with TwoPass using cutoff of {self.cutoff}")

        num_events, counter = self._count_predicates(stream)
        if num_events == 0:
            raise InsufficientTrainingDataError("Insufficient training data to create model.")
        logger.info(f"Computed event counts: {num_events} events")
        predicate_index, pred_counts = self._predicate_index(counter)

        stream.reset()
        indexed, outcome_index = self._index_events(stream, predicate_index)
        if len(indexed) != num_events:
            raise InconsistentEventStreamError(
                f"Event stream changed between passes: {num_events} events counted, "
                f"{len(indexed)} indexed")
        return self._build(indexed, num_events, predicate_index, pred_counts, outcome_index)


class OnePassIndexer(DataIndexer):
    """Reads the stream once, keeping its events in memory"""

    name = DATA_INDEXER_ONE_PASS
    sort_default = False

    def index(self, events) -> IndexedEvents:
        stream: EventStream = as_event_stream(events)
        logger.info(f"Indexing events with OnePass using cutoff of {self.cutoff}")

        buffered = list(stream)
        num_events, counter = self._count_predicates(buffered)
        if num_events == 0:
            raise InsufficientTrainingDataError("Insufficient training data to create model.")
        predicate_index, pred_counts = self._predicate_index(counter)
        indexed, outcome_index = self._index_events(buffered, predicate_index)
        return self._build(indexed, num_events, predicate_index, pred_counts, outcome_index)


INDEXERS = {
    DATA_INDEXER_TWO_PASS: TwoPassIndexer,
    DATA_INDEXER_ONE_PASS: OnePassIndexer,
}


def create_indexer(config: TrainingConfig, sort_default: Optional[bool] = None) -> DataIndexer:
    """Build the indexer named by ``DataIndexer`` (TwoPass by default)"""
    name = config.get_str(DATA_INDEXER_PARAM, DATA_INDEXER_TWO_PASS)
    indexer_class = INDEXERS.get(name)
    if indexer_class is None:
        raise ConfigurationError(
            f"Unknown {DATA_INDEXER_PARAM} {name!r}, expected one of {', '.join(INDEXERS)}")
    default = indexer_class.sort_default if sort_default is None else sort_default
    return indexer_class(cutoff=config.get_int(CUTOFF_PARAM, CUTOFF_DEFAULT),
                         sort=config.get_bool(SORT_PARAM, default))
