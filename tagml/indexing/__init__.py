"""
Event streams and indexers that turn them into trainer input
"""

from .events import (
    Event,
    EventStream,
    ListEventStream,
    IterableEventStream,
    FileEventStream,
    RealValueFileEventStream,
    parse_line,
    parse_real_value_line,
    write_events,
    as_event_stream,
)
from .indexer import IndexedEvents, DataIndexer, TwoPassIndexer, OnePassIndexer, create_indexer

__all__ = [
    'Event',
    'EventStream',
    'ListEventStream',
    'IterableEventStream',
    'FileEventStream',
    'RealValueFileEventStream',
    'parse_line',
    'parse_real_value_line',
    'write_events',
    'as_event_stream',
    'IndexedEvents',
    'DataIndexer',
    'TwoPassIndexer',
    'OnePassIndexer',
    'create_indexer',
]
