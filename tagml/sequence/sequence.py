"""
Partial and complete outcome sequences produced by beam search
"""

import math
from typing import List, Optional, Sequence as SequenceType


class Sequence:
    """Outcomes chosen so far, their probabilities and the summed log score"""

    __slots__ = ('_outcomes', '_probs', 'score')

    def __init__(self, outcomes: Optional[SequenceType[str]] = None,
                 probs: Optional[SequenceType[float]] = None,
                 score: Optional[float] = None):
        self._outcomes: List[str] = list(outcomes or ())
        if probs is None:
            probs = [1.0] * len(self._outcomes)
        self._probs: List[float] = list(probs)
        if len(self._probs) != len(self._outcomes):
            raise ValueError(f"{len(self._probs)} probabilities for {len(self._outcomes)} outcomes")
        self.score = float(sum(_log(p) for p in self._probs)) if score is None else score

    def extend(self, outcome: str, prob: float) -> 'Sequence':
        """New sequence with one more outcome; this one is left untouched"""
        return Sequence(self._outcomes + [outcome], self._probs + [prob],
                        self.score + _log(prob))

    @property
    def outcomes(self) -> List[str]:
        return list(self._outcomes)

    @property
    def probs(self) -> List[float]:
        return list(self._probs)

    def __len__(self) -> int:
        return len(self._outcomes)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return (self._outcomes == other._outcomes and self._probs == other._probs
                and abs(self.score - other.score) < 0.0000001)

    def __hash__(self) -> int:
        return hash(tuple(self._outcomes))

    def __repr__(self) -> str:
        return f"{self.score} {self._outcomes}"


def _log(p: float) -> float:
    return math.log(p) if p > 0 else -math.inf
