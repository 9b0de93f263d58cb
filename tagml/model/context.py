"""
Per-predicate parameters of a fitted model
"""

from typing import Sequence

import numpy as np
from numpy.typing import NDArray


class Context:
    """Outcome ids one predicate influences and the matching weights

    Both arrays are read-only once constructed so that a model can be shared
    between threads without copying.
    """

    __slots__ = ('outcomes', 'parameters')

    def __init__(self, outcomes: Sequence[int], parameters: Sequence[float]):
        outcome_array = np.array(outcomes, dtype=np.int32)
        parameter_array = np.array(parameters, dtype=np.float64)
        if outcome_array.shape != parameter_array.shape:
            raise ValueError(
                f"Outcome pattern has {len(outcome_array)} entries "
                f"but {len(parameter_array)} parameters")
        outcome_array.setflags(write=False)
        parameter_array.setflags(write=False)
        self.outcomes: NDArray[np.int32] = outcome_array
        self.parameters: NDArray[np.float64] = parameter_array

    def __len__(self) -> int:
        return len(self.outcomes)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Context):
            return NotImplemented
        return (np.array_equal(self.outcomes, other.outcomes)
                and np.array_equal(self.parameters, other.parameters))

    def __hash__(self) -> int:
        return hash((self.outcomes.tobytes(), self.parameters.tobytes()))

    def __repr__(self) -> str:
        return f"Context(outcomes={self.outcomes.tolist()}, parameters={self.parameters.tolist()})"
