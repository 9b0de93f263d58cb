"""
Quasi-Newton maxent training
"""

from .objective import Function, NegLogLikelihood, ParallelNegLogLikelihood
from .line_search import LineSearchResult, do_line_search, do_constrained_line_search
from .minimizer import QNMinimizer, L2RegFunction
from .trainer import QNTrainer

__all__ = [
    'Function',
    'NegLogLikelihood',
    'ParallelNegLogLikelihood',
    'LineSearchResult',
    'do_line_search',
    'do_constrained_line_search',
    'QNMinimizer',
    'L2RegFunction',
    'QNTrainer',
]
