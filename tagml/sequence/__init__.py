"""
Sequence decoding with beam search
"""

from .sequence import Sequence
from .validators import (
    ContextGenerator,
    SequenceValidator,
    AlwaysValid,
    BioSequenceValidator,
    extract_name_type,
)
from .beam_search import BeamSearch, ZERO_LOG
from .stream import SequenceStream, TrainingSequence

__all__ = [
    'Sequence',
    'ContextGenerator',
    'SequenceValidator',
    'AlwaysValid',
    'BioSequenceValidator',
    'extract_name_type',
    'BeamSearch',
    'ZERO_LOG',
    'SequenceStream',
    'TrainingSequence',
]
