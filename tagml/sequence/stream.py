"""
Labeled sequences for training sequence models

A :class:`SequenceStream` turns each labeled sequence into one event per
position, computing the context of a position from the outcomes before it.
During training it also re-tags a sequence with the current model so the
trainer can compare the decoded events against the gold ones.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from ..core.exceptions import InvalidArgumentError, TrainingError
from ..indexing.events import Event, ListEventStream
from ..model.model import Model
from .beam_search import BeamSearch
from .validators import ContextGenerator, SequenceValidator

logger = logging.getLogger(__name__)

DEFAULT_BEAM_SIZE = 3


@dataclass(frozen=True)
class TrainingSequence:
    """Tokens with their gold outcomes, one outcome per token"""
    tokens: Tuple[Any, ...]
    outcomes: Tuple[str, ...]
    additional_context: Tuple[Any, ...] = field(default=())

    def __post_init__(self):
        object.__setattr__(self, 'tokens', tuple(self.tokens))
        object.__setattr__(self, 'outcomes', tuple(self.outcomes))
        object.__setattr__(self, 'additional_context', tuple(self.additional_context))
        if len(self.tokens) != len(self.outcomes):
            raise InvalidArgumentError(
                f"Sequence has {len(self.tokens)} tokens but {len(self.outcomes)} outcomes")

    def __len__(self) -> int:
        return len(self.tokens)


class SequenceStream:
    """
    Restartable collection of training sequences

    Args:
        sequences: The labeled sequences, read once into memory
        context_generator: Produces the predicates of each position
        validator: Constrains decoding in :meth:`update_context`
        beam_size: Beam width used to re-tag sequences
    """

    def __init__(self, sequences: Iterable[TrainingSequence],
                 context_generator: ContextGenerator,
                 validator: Optional[SequenceValidator] = None,
                 beam_size: int = DEFAULT_BEAM_SIZE):
        self.sequences: List[TrainingSequence] = list(sequences)
        self.context_generator = context_generator
        self.validator = validator
        self.beam_size = beam_size

    def __iter__(self) -> Iterator[TrainingSequence]:
        return iter(self.sequences)

    def __len__(self) -> int:
        return len(self.sequences)

    def _events_for(self, sequence: TrainingSequence, outcomes) -> List[Event]:
        return [Event(outcome, self.context_generator.get_context(
                    i, sequence.tokens, outcomes, sequence.additional_context))
                for i, outcome in enumerate(outcomes)]

    def events(self, sequence: TrainingSequence) -> List[Event]:
        """Gold events of ``sequence``"""
        return self._events_for(sequence, sequence.outcomes)

    def update_context(self, sequence: TrainingSequence, model: Model) -> List[Event]:
        """Events of ``sequence`` as tagged by ``model``"""
        if len(sequence) == 0:
            return []
        search = BeamSearch(self.beam_size, model)
        best = search.best_sequence(sequence.tokens, self.context_generator, self.validator,
                                    sequence.additional_context)
        if best is None:
            raise TrainingError(f"No valid outcome sequence for {list(sequence.tokens)!r}")
        return self._events_for(sequence, best.outcomes)

    def event_stream(self) -> ListEventStream:
        """All gold events, sequence after sequence"""
        return ListEventStream(event for sequence in self.sequences
                               for event in self.events(sequence))
