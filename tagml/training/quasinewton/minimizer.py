"""
Limited-memory quasi-Newton minimizer (L-BFGS / OWL-QN)

Minimizes ``f(x) + l1 * |x|_1 + l2 * |x|^2``. The L2 term is folded into
the function, the L1 term is handled with the orthant-wise pseudo-gradient
and a constrained line search.
"""

import logging
import time
from collections import deque
from typing import Callable, Deque, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ...core.exceptions import InvalidArgumentError
from ..base import (
    STOP_GRADIENT,
    STOP_MAX_FCT_EVAL,
    STOP_MAX_ITERATIONS,
    STOP_STEP_SIZE,
    STOP_TOLERANCE,
)
from .line_search import LineSearchResult, do_constrained_line_search, do_line_search
from .objective import Function

logger = logging.getLogger(__name__)

L1COST_DEFAULT = 0.0
L2COST_DEFAULT = 0.0
NUM_ITERATIONS_DEFAULT = 100
M_DEFAULT = 15
MAX_FCT_EVAL_DEFAULT = 30000

CONVERGE_TOLERANCE = 1e-4
REL_GRAD_NORM_TOL = 1e-4
INITIAL_STEP_SIZE = 1.0
MIN_STEP_SIZE = 1e-10


class L2RegFunction(Function):
    """Adds ``l2 * x.x`` to a function (and ``2 * l2 * x`` to its gradient)"""

    def __init__(self, function: Function, l2_cost: float):
        self.function = function
        self.l2_cost = l2_cost

    @property
    def dimension(self) -> int:
        return self.function.dimension

    def value_at(self, x: NDArray[np.float64]) -> float:
        self.check_dimension(x)
        value = self.function.value_at(x)
        if self.l2_cost > 0:
            value += self.l2_cost * float(np.dot(x, x))
        return value

    def gradient_at(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        self.check_dimension(x)
        gradient = self.function.gradient_at(x)
        if self.l2_cost > 0:
            gradient = gradient + 2 * self.l2_cost * x
        return gradient


class QNMinimizer:
    """
    L-BFGS two-loop recursion with Armijo backtracking

    Stops after ``iterations`` iterations, or earlier when the relative
    function change drops below ``tolerance``, the relative gradient norm
    below 1e-4, the step size below 1e-10, or the number of function
    evaluations exceeds ``max_fct_eval``. After minimizing, the reason is
    available as :attr:`stop_reason`.
    """

    def __init__(self,
                 l1_cost: float = L1COST_DEFAULT,
                 l2_cost: float = L2COST_DEFAULT,
                 iterations: int = NUM_ITERATIONS_DEFAULT,
                 m: int = M_DEFAULT,
                 max_fct_eval: int = MAX_FCT_EVAL_DEFAULT,
                 tolerance: float = CONVERGE_TOLERANCE,
                 evaluator: Optional[Callable[[NDArray[np.float64]], float]] = None):
        if l1_cost < 0 or l2_cost < 0:
            raise InvalidArgumentError("L1-cost and L2-cost must not be less than zero")
        if iterations <= 0:
            raise InvalidArgumentError("Number of iterations must be larger than zero")
        if m <= 0:
            raise InvalidArgumentError("Number of Hessian updates must be larger than zero")
        if max_fct_eval <= 0:
            raise InvalidArgumentError(
                "Maximum number of function evaluations must be larger than zero")
        if tolerance < 0:
            raise InvalidArgumentError(f"tolerance must not be negative, got {tolerance}")

        self.l1_cost = l1_cost
        self.l2_cost = l2_cost
        self.iterations = iterations
        self.m = m
        self.max_fct_eval = max_fct_eval
        self.tolerance = tolerance
        self.evaluator = evaluator

        self.stop_reason = STOP_MAX_ITERATIONS
        self.iterations_run = 0
        self.values = []
        self.accuracies = []

    def minimize(self, function: Function) -> NDArray[np.float64]:
        """
        Minimize ``function`` (plus the configured penalties) from the origin

        Returns:
            The parameter vector at the last accepted point
        """
        l2_function = L2RegFunction(function, self.l2_cost)
        dimension = l2_function.dimension
        history: Deque[Tuple[NDArray[np.float64], NDArray[np.float64], float]] = deque(maxlen=self.m)
        self.stop_reason = STOP_MAX_ITERATIONS
        self.iterations_run = 0
        self.values = []
        self.accuracies = []

        curr_point = np.zeros(dimension, dtype=np.float64)
        curr_value = l2_function.value_at(curr_point)
        curr_grad = np.array(l2_function.gradient_at(curr_point), dtype=np.float64)

        if self.l1_cost > 0:
            curr_value += self.l1_cost * float(np.sum(np.abs(curr_point)))
            pseudo_grad = self._pseudo_gradient(curr_point, curr_grad)
            lsr = LineSearchResult.initial_for_l1(curr_value, curr_grad, pseudo_grad, curr_point)
            initial_step_size = _inv_l2_norm(pseudo_grad)
        else:
            lsr = LineSearchResult.initial(curr_value, curr_grad, curr_point)
            initial_step_size = _inv_l2_norm(curr_grad)

        logger.info(f"Solving convex optimization problem. Objective function has "
                    f"{dimension} variable(s).")
        logger.info(f"Performing {self.iterations} iterations with "
                    f"L1Cost={self.l1_cost} and L2Cost={self.l2_cost}")

        start_time = time.time()
        for iteration in range(1, self.iterations + 1):
            self.iterations_run = iteration
            if self.l1_cost > 0:
                direction = self._direction(lsr.pseudo_grad_at_next.copy(), history)
                direction[direction * lsr.pseudo_grad_at_next >= 0] = 0.0
                do_constrained_line_search(l2_function, direction, lsr, self.l1_cost,
                                           initial_step_size)
                lsr.pseudo_grad_at_next = self._pseudo_gradient(lsr.next_point, lsr.grad_at_next)
            else:
                direction = self._direction(lsr.grad_at_next.copy(), history)
                do_line_search(l2_function, direction, lsr, initial_step_size)

            s = lsr.next_point - lsr.curr_point
            y = lsr.grad_at_next - lsr.grad_at_curr
            with np.errstate(divide='ignore'):
                rho = np.float64(1.0) / np.dot(s, y)
            history.append((s, y, float(rho)))

            self.values.append(lsr.value_at_next)
            if self.evaluator is not None:
                accuracy = self.evaluator(lsr.next_point)
                self.accuracies.append(accuracy)
                logger.info(f"{iteration:>3}:  \t{lsr.value_at_next}\t"
                            f"{lsr.func_change_rate}\t{accuracy}")
            else:
                logger.info(f"{iteration:>3}:  \t{lsr.value_at_next}\t{lsr.func_change_rate}")

            reason = self._converged(lsr)
            if reason is not None:
                self.stop_reason = reason
                break

            initial_step_size = INITIAL_STEP_SIZE

        parameters = np.array(lsr.next_point, dtype=np.float64)
        if self.l1_cost > 0 and self.l2_cost > 0:
            parameters *= np.sqrt(1 + self.l2_cost)

        logger.info(f"Running time: {time.time() - start_time:.3f}s")
        return parameters

    def _pseudo_gradient(self, x: NDArray[np.float64], g: NDArray[np.float64]) -> NDArray[np.float64]:
        l1 = self.l1_cost
        at_zero = np.where(g < -l1, g + l1, np.where(g > l1, g - l1, 0.0))
        return np.where(x < 0, g - l1, np.where(x > 0, g + l1, at_zero))

    @staticmethod
    def _direction(direction: NDArray[np.float64], history) -> NDArray[np.float64]:
        """Two-loop recursion: approximate ``-H^-1 g`` from the stored pairs"""
        alphas = []
        for s, y, rho in reversed(history):
            alpha = rho * float(np.dot(s, direction))
            direction -= alpha * y
            alphas.append(alpha)
        for (s, y, rho), alpha in zip(history, reversed(alphas)):
            beta = rho * float(np.dot(y, direction))
            direction += s * (alpha - beta)
        return -direction

    def _converged(self, lsr: LineSearchResult) -> Optional[str]:
        if lsr.func_change_rate < self.tolerance:
            logger.info(f"Function change rate is smaller than the threshold "
                        f"{self.tolerance}. Training will stop.")
            return STOP_TOLERANCE

        x_norm = max(1.0, float(np.linalg.norm(lsr.next_point)))
        if self.l1_cost > 0:
            grad_norm = float(np.linalg.norm(lsr.pseudo_grad_at_next))
        else:
            grad_norm = float(np.linalg.norm(lsr.grad_at_next))
        if grad_norm / x_norm < REL_GRAD_NORM_TOL:
            logger.info(f"Relative L2-norm of the gradient is smaller than the threshold "
                        f"{REL_GRAD_NORM_TOL}. Training will stop.")
            return STOP_GRADIENT

        if lsr.step_size < MIN_STEP_SIZE:
            logger.info(f"Step size is smaller than the minimum step size "
                        f"{MIN_STEP_SIZE}. Training will stop.")
            return STOP_STEP_SIZE

        if lsr.fct_eval_count > self.max_fct_eval:
            logger.info(f"Maximum number of function evaluations has exceeded the threshold "
                        f"{self.max_fct_eval}. Training will stop.")
            return STOP_MAX_FCT_EVAL

        return None


def _inv_l2_norm(vector: NDArray[np.float64]) -> float:
    norm = float(np.linalg.norm(vector))
    if norm == 0:
        return INITIAL_STEP_SIZE
    return 1.0 / norm
