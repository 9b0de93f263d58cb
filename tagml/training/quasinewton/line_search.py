"""
Backtracking line search for the quasi-Newton minimizer

Both variants shrink the step by RHO until the Armijo sufficient-decrease
condition holds. The constrained variant (used with L1 regularization)
additionally projects every trial point back onto the orthant of the
current point.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from .objective import Function

C = 0.0001
RHO = 0.5


@dataclass
class LineSearchResult:
    """State carried from one line search to the next"""
    step_size: float
    value_at_curr: float
    value_at_next: float
    grad_at_curr: NDArray[np.float64]
    grad_at_next: NDArray[np.float64]
    curr_point: NDArray[np.float64]
    next_point: NDArray[np.float64]
    fct_eval_count: int
    pseudo_grad_at_next: Optional[NDArray[np.float64]] = None
    sign_vector: Optional[NDArray[np.float64]] = None

    @property
    def func_change_rate(self) -> float:
        if self.value_at_curr == 0:
            return 0.0
        return (self.value_at_curr - self.value_at_next) / self.value_at_curr

    @classmethod
    def initial(cls, value_at_x: float, grad_at_x: NDArray[np.float64],
                x: NDArray[np.float64]) -> 'LineSearchResult':
        return cls(step_size=0.0, value_at_curr=0.0, value_at_next=value_at_x,
                   grad_at_curr=np.zeros_like(x), grad_at_next=grad_at_x,
                   curr_point=np.zeros_like(x), next_point=x, fct_eval_count=0)

    @classmethod
    def initial_for_l1(cls, value_at_x: float, grad_at_x: NDArray[np.float64],
                       pseudo_grad_at_x: NDArray[np.float64],
                       x: NDArray[np.float64]) -> 'LineSearchResult':
        result = cls.initial(value_at_x, grad_at_x, x)
        result.pseudo_grad_at_next = pseudo_grad_at_x
        result.sign_vector = np.zeros_like(x)
        return result


def do_line_search(function: Function, direction: NDArray[np.float64],
                   lsr: LineSearchResult, initial_step_size: float) -> None:
    """Armijo backtracking along ``direction`` from ``lsr.next_point``"""
    step_size = initial_step_size
    fct_eval_count = lsr.fct_eval_count
    x = lsr.next_point
    grad_at_x = lsr.grad_at_next
    value_at_x = lsr.value_at_next

    cached_prod = C * float(np.dot(direction, grad_at_x))

    while True:
        next_point = x + direction * step_size
        value_at_next = function.value_at(next_point)
        fct_eval_count += 1

        if value_at_next <= value_at_x + cached_prod * step_size or step_size == 0.0:
            break
        step_size *= RHO

    lsr.step_size = step_size
    lsr.value_at_curr = value_at_x
    lsr.value_at_next = value_at_next
    lsr.grad_at_curr = grad_at_x
    lsr.grad_at_next = function.gradient_at(next_point)
    lsr.curr_point = x
    lsr.next_point = next_point
    lsr.fct_eval_count = fct_eval_count


def do_constrained_line_search(function: Function, direction: NDArray[np.float64],
                               lsr: LineSearchResult, l1_cost: float,
                               initial_step_size: float) -> None:
    """Backtracking restricted to the orthant of the current point (OWL-QN)"""
    step_size = initial_step_size
    fct_eval_count = lsr.fct_eval_count
    x = lsr.next_point
    grad_at_x = lsr.grad_at_next
    pseudo_grad_at_x = lsr.pseudo_grad_at_next
    value_at_x = lsr.value_at_next

    sign_x = np.where(x == 0, -pseudo_grad_at_x, x)

    while True:
        next_point = x + direction * step_size
        next_point[next_point * sign_x <= 0] = 0.0

        value_at_next = function.value_at(next_point) + l1_cost * float(np.sum(np.abs(next_point)))
        fct_eval_count += 1

        dir_gradient_at_x = float(np.dot(next_point - x, pseudo_grad_at_x))
        if value_at_next <= value_at_x + C * dir_gradient_at_x or step_size == 0.0:
            break
        step_size *= RHO

    lsr.step_size = step_size
    lsr.value_at_curr = value_at_x
    lsr.value_at_next = value_at_next
    lsr.grad_at_curr = grad_at_x
    lsr.grad_at_next = function.gradient_at(next_point)
    lsr.curr_point = x
    lsr.next_point = next_point
    lsr.sign_vector = sign_x
    lsr.fct_eval_count = fct_eval_count
