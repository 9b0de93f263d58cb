"""
Capabilities supplied by the caller of the beam search decoder

A :class:`ContextGenerator` produces the predicates for one position of the
input, a :class:`SequenceValidator` decides whether an outcome may follow a
given history of outcomes.
"""

import re
from typing import Any, Optional, Sequence

START = 'start'
CONTINUE = 'cont'
OTHER = 'other'

_NAME_TYPE = re.compile(r'(.+)-\w+')


class ContextGenerator:
    """Produces the context predicates for position ``index`` of ``tokens``"""

    def get_context(self, index: int, tokens: Sequence[Any], prior_outcomes: Sequence[str],
                    additional_context: Optional[Sequence[Any]] = None) -> Sequence[str]:
        raise NotImplementedError


class SequenceValidator:
    """Legality constraint on the outcome history"""

    def valid_sequence(self, index: int, tokens: Sequence[Any],
                       outcomes: Sequence[str], outcome: str) -> bool:
        raise NotImplementedError


class AlwaysValid(SequenceValidator):
    """Accepts every outcome"""

    def valid_sequence(self, index, tokens, outcomes, outcome) -> bool:
        return True


def extract_name_type(outcome: str) -> Optional[str]:
    """``person`` for ``person-start``; None for untyped outcomes"""
    match = _NAME_TYPE.fullmatch(outcome)
    return match.group(1) if match else None


class BioSequenceValidator(SequenceValidator):
    """
    Start/continue/other name tagging constraint

    A ``<type>-cont`` outcome is only valid directly after a
    ``<type>-start`` or ``<type>-cont`` of the same type; it can never be
    the first outcome.
    """

    def valid_sequence(self, index, tokens, outcomes, outcome) -> bool:
        if not outcome.endswith(CONTINUE):
            return True

        if not outcomes:
            return False

        previous = outcomes[-1]
        if previous.endswith(OTHER):
            return False

        if previous.endswith(CONTINUE) or previous.endswith(START):
            previous_type = extract_name_type(previous)
            name_type = extract_name_type(outcome)
            if previous_type is not None or name_type is not None:
                return name_type is not None and name_type == previous_type

        return True
