"""
Type definitions shared by the model, training and persistence code
"""

from enum import Enum


class ModelType(Enum):
    """Kind of a fitted model, also its tag in persisted model files"""
    GIS = 'GIS'
    QN = 'QN'
    PERCEPTRON = 'Perceptron'

    @property
    def is_maxent(self) -> bool:
        """GIS and QN models are log-linear and share the softmax evaluation"""
        return self is not ModelType.PERCEPTRON

    @classmethod
    def from_tag(cls, tag: str) -> 'ModelType':
        for model_type in cls:
            if model_type.value == tag:
                return model_type
        raise ValueError(f"Unknown model type tag: {tag!r}")
