"""
Training events and the streams that produce them

An event is one observed outcome together with the context predicates that
were active when it was observed. Feature generators (outside of this
package) produce them; indexers and trainers consume them.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from ..core.exceptions import InvalidArgumentError, NegativeValueError, UnsupportedOperationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """An outcome label plus the context predicates observed with it"""
    outcome: str
    context: Tuple[str, ...]
    values: Optional[Tuple[float, ...]] = None  # parallel to context, None => 1.0 each

    def __post_init__(self):
        object.__setattr__(self, 'context', tuple(self.context))
        if self.values is not None:
            values = tuple(float(v) for v in self.values)
            if len(values) != len(self.context):
                raise InvalidArgumentError(
                    f"Event for {self.outcome!r} has {len(self.context)} predicates "
                    f"but {len(values)} values")
            for predicate, value in zip(self.context, values):
                if value < 0 or math.isnan(value):
                    raise NegativeValueError(
                        f"Negative values are not allowed: {predicate}={value}")
            object.__setattr__(self, 'values', values)

    def __str__(self) -> str:
        if self.values is None:
            return f"{self.outcome} [{' '.join(self.context)}]"
        pairs = ' '.join(f"{p}={v}" for p, v in zip(self.context, self.values))
        return f"{self.outcome} [{pairs}]"


class EventStream:
    """A source of events

    Iterating a stream yields its events from the current position. Streams
    that can be read more than once (needed by two-pass indexing) override
    :meth:`reset`.
    """

    restartable = False

    def __iter__(self) -> Iterator[Event]:
        raise NotImplementedError

    def reset(self) -> None:
        raise UnsupportedOperationError(
            f"{self.__class__.__name__} cannot be restarted")


class ListEventStream(EventStream):
    """Restartable stream over an in-memory list of events"""

    restartable = True

    def __init__(self, events: Iterable[Event]):
        self._events: List[Event] = list(events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def reset(self) -> None:
        pass


class IterableEventStream(EventStream):
    """One-shot stream over an arbitrary iterable (generators, readers, ...)"""

    def __init__(self, events: Iterable[Event]):
        self._events = iter(events)

    def __iter__(self) -> Iterator[Event]:
        return self._events


def to_line(event: Event) -> str:
    """Format an event as one line of an event file"""
    if event.values is None:
        tokens = list(event.context)
    else:
        tokens = [f"{p}={v!r}" for p, v in zip(event.context, event.values)]
    return ' '.join([event.outcome] + tokens) + '\n'


def parse_line(line: str) -> Optional[Event]:
    """Parse ``outcome pred1 pred2 ...``; blank lines give None"""
    tokens = line.split()
    if not tokens:
        return None
    return Event(tokens[0], tuple(tokens[1:]))


def parse_real_value_line(line: str) -> Optional[Event]:
    """Parse a line whose predicates may carry ``=value`` suffixes

    Only a numeric suffix after the last ``=`` is taken as the value, so
    ``w=he`` stays the predicate ``w=he`` with value 1.0 while
    ``w=he=0.5`` becomes ``w=he`` with value 0.5.
    """
    tokens = line.split()
    if not tokens:
        return None
    predicates: List[str] = []
    values: List[float] = []
    for token in tokens[1:]:
        name, value = token, 1.0
        split_at = token.rfind('=')
        if 0 < split_at < len(token) - 1:
            try:
                value = float(token[split_at + 1:])
                name = token[:split_at]
            except ValueError:
                name, value = token, 1.0
        predicates.append(name)
        values.append(value)
    return Event(tokens[0], tuple(predicates), tuple(values))


class FileEventStream(EventStream):
    """Restartable stream over an event file, one event per line"""

    restartable = True

    def __init__(self, path: Union[str, Path], encoding: str = 'utf-8'):
        self.path = Path(path)
        self.encoding = encoding

    def _parse(self, line: str) -> Optional[Event]:
        return parse_line(line)

    def __iter__(self) -> Iterator[Event]:
        with open(self.path, 'r', encoding=self.encoding) as f:
            for line_no, line in enumerate(f, 1):
                try:
                    event = self._parse(line)
                except NegativeValueError as e:
                    raise NegativeValueError(f"{self.path}:{line_no}: {e}") from e
                if event is not None:
                    yield event

    def reset(self) -> None:
        pass


class RealValueFileEventStream(FileEventStream):
    """Event file whose predicates carry real values"""

    def _parse(self, line: str) -> Optional[Event]:
        return parse_real_value_line(line)


def write_events(events: Iterable[Event], path: Union[str, Path], encoding: str = 'utf-8') -> int:
    """Write events in the event-file format, returning how many were written"""
    count = 0
    with open(path, 'w', encoding=encoding) as f:
        for event in events:
            f.write(to_line(event))
            count += 1
    return count


def as_event_stream(events: Union[EventStream, Sequence[Event], Iterable[Event]]) -> EventStream:
    """Wrap lists and iterables so that indexers always see an EventStream"""
    if isinstance(events, EventStream):
        return events
    if isinstance(events, (list, tuple)):
        return ListEventStream(events)
    return IterableEventStream(events)
