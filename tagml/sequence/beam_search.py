"""
Beam search decoding of outcome sequences

At every position the best ``size`` partial sequences of the previous
position are extended with the outcomes the model finds most probable,
subject to a :class:`SequenceValidator`. Only the ``size`` best extensions
survive into the next position.
"""

import logging
from collections import OrderedDict
from typing import Any, List, Optional, Sequence as SequenceType, Tuple

import numpy as np
from numpy.typing import NDArray

from ..model.model import Model
from .sequence import Sequence
from .validators import AlwaysValid, ContextGenerator, SequenceValidator

logger = logging.getLogger(__name__)

ZERO_LOG = -100000


class _ContextCache:
    """Small LRU map of context predicates to outcome probabilities"""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._entries: 'OrderedDict[Tuple[str, ...], NDArray[np.float64]]' = OrderedDict()

    def get(self, key: Tuple[str, ...]) -> Optional[NDArray[np.float64]]:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def put(self, key: Tuple[str, ...], value: NDArray[np.float64]) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


class BeamSearch:
    """
    Beam search over a sequence classifier

    The model is only read, so several decoders (or threads) may share it.
    A decoder with a cache keeps mutable state and should not be shared
    between threads.
    """

    def __init__(self, size: int, model: Model, cache_size: int = 0):
        if size <= 0:
            raise ValueError(f"Beam size must be positive, got {size}")
        self.size = size
        self.model = model
        self.contexts_cache = _ContextCache(cache_size) if cache_size > 0 else None

    def _probabilities(self, contexts: SequenceType[str]) -> NDArray[np.float64]:
        if self.contexts_cache is None:
            return self.model.eval(contexts)
        key = tuple(contexts)
        scores = self.contexts_cache.get(key)
        if scores is None:
            scores = self.model.eval(contexts)
            scores.setflags(write=False)
            self.contexts_cache.put(key, scores)
        return scores

    def best_sequences(self, num_sequences: int, tokens: SequenceType[Any],
                       context_generator: ContextGenerator,
                       validator: Optional[SequenceValidator] = None,
                       additional_context: Optional[SequenceType[Any]] = None,
                       min_sequence_score: float = ZERO_LOG) -> List[Sequence]:
        """
        Decode the ``num_sequences`` best outcome sequences for ``tokens``

        Args:
            num_sequences: How many sequences to return at most
            tokens: The input, one outcome is chosen per element
            context_generator: Produces the predicates of each position
            validator: Rejects illegal outcomes (everything is legal by default)
            additional_context: Passed through to the context generator
            min_sequence_score: Extensions scoring at or below this are dropped

        Returns:
            Sequences ordered best first; ties keep the order they were found in
        """
        validator = validator if validator is not None else AlwaysValid()
        additional_context = additional_context if additional_context is not None else ()

        prev: List[Sequence] = [Sequence()]
        for i in range(len(tokens)):
            candidates: List[Sequence] = []
            for top in prev[:self.size]:
                outcomes = top.outcomes
                contexts = context_generator.get_context(i, tokens, outcomes, additional_context)
                scores = self._probabilities(contexts)

                # only advance the outcomes scoring among the top ``size``
                threshold = np.sort(scores)[max(0, len(scores) - self.size)]
                candidates.extend(self._extend(top, scores, scores >= threshold, i, tokens,
                                               outcomes, validator, min_sequence_score))
                # all outcomes are only tried while nothing at this position survived
                if not candidates:
                    candidates.extend(self._extend(top, scores, np.ones(len(scores), dtype=bool),
                                                   i, tokens, outcomes, validator,
                                                   min_sequence_score))

            # stable sort: equal scores keep insertion order
            candidates.sort(key=lambda sequence: -sequence.score)
            prev = candidates[:self.size]
            logger.debug(f"Position {i}: {len(candidates)} candidates, kept {len(prev)}")

        return prev[:min(num_sequences, len(prev))]

    def best_sequence(self, tokens: SequenceType[Any], context_generator: ContextGenerator,
                      validator: Optional[SequenceValidator] = None,
                      additional_context: Optional[SequenceType[Any]] = None) -> Optional[Sequence]:
        """The single best sequence, or None when every path was pruned"""
        sequences = self.best_sequences(1, tokens, context_generator, validator,
                                        additional_context)
        return sequences[0] if sequences else None

    def _extend(self, top: Sequence, scores: NDArray[np.float64], allowed: NDArray[np.bool_],
                index: int, tokens, outcomes: List[str], validator: SequenceValidator,
                min_sequence_score: float) -> List[Sequence]:
        extended = []
        for p in np.nonzero(allowed)[0]:
            outcome = self.model.outcome(int(p))
            if validator.valid_sequence(index, tokens, outcomes, outcome):
                sequence = top.extend(outcome, float(scores[p]))
                if sequence.score > min_sequence_score:
                    extended.append(sequence)
        return extended
