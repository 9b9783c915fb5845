"""
Glue between pybal objects and `scipy.optimize.least_squares`.

The optimizer owns the iteration, the linear algebra and the Jacobian
estimation. This module only hands it residual functions and writes the
solution back into the caller's parameter buffers in place.
"""
import logging
import numpy as np
from numpy.typing import NDArray
from scipy.optimize import least_squares, OptimizeResult
from typing import Any, Dict

from .cost_functions import CostFunction
from .problem import BALProblem
from .utils import jacobian_sparsity

logger = logging.getLogger(__name__)

DEFAULT_SOLVER_OPTIONS: Dict[str, Any] = {
    "method": "trf",
    "x_scale": "jac",
    "ftol": 1e-4,
    "verbose": 0,
}


def solve(problem: BALProblem, **options: Any) -> OptimizeResult:
    """
    Minimizes the reprojection error of `problem` and stores the solution in
    its parameter buffer.

    Args:
        problem: The BAL problem. Its `parameters` are updated in place.
        **options: Keyword arguments for `least_squares`, overriding
                   DEFAULT_SOLVER_OPTIONS.

    Returns:
        The `least_squares` result object.
    """
    if problem.num_residuals() == 0:
        raise ValueError("Problem has no observations to optimize.")

    solver_options = dict(DEFAULT_SOLVER_OPTIONS)
    solver_options.update(options)
    # 'lm' does not accept a sparsity structure
    if solver_options["method"] != "lm":
        solver_options.setdefault("jac_sparsity", jacobian_sparsity(problem))

    x0 = problem.parameters.copy()
    initial_cost = problem.cost(x0)
    result = least_squares(problem.residuals, x0, **solver_options)
    problem.parameters[:] = result.x

    logger.info(f"Bundle adjustment finished after {result.nfev} evaluations: "
                f"cost {initial_cost:.4e} -> {result.cost:.4e} ({result.message})")
    return result


def solve_cost_function(cost_function: CostFunction, *blocks: NDArray[np.float64],
                        **options: Any) -> OptimizeResult:
    """
    Minimizes a single cost function over its parameter blocks.

    Args:
        cost_function: Any CostFunction.
        *blocks: One float64 array per parameter block, updated in place.
        **options: Keyword arguments for `least_squares`.

    Returns:
        The `least_squares` result object.
    """
    sizes = cost_function.parameter_block_sizes
    if len(blocks) != len(sizes):
        raise ValueError(f"Cost function expects {len(sizes)} parameter blocks, got {len(blocks)}")
    for block, size in zip(blocks, sizes):
        if not isinstance(block, np.ndarray) or block.shape != (size,):
            raise ValueError(f"Parameter block must be an array of shape ({size},)")
        if block.dtype != np.float64:
            raise ValueError(f"Parameter blocks must be float64, got {block.dtype}")

    offsets = np.cumsum((0,) + tuple(sizes))

    def residuals(x: NDArray[np.float64]) -> NDArray[np.float64]:
        split = [x[offsets[k]:offsets[k + 1]] for k in range(len(sizes))]
        return np.asarray(cost_function.evaluate(*split), dtype=np.float64)

    solver_options: Dict[str, Any] = {"method": "trf", "verbose": 0}
    solver_options.update(options)

    x0 = np.concatenate([np.asarray(b, dtype=np.float64) for b in blocks])
    result = least_squares(residuals, x0, **solver_options)
    for k, block in enumerate(blocks):
        block[:] = result.x[offsets[k]:offsets[k + 1]]

    logger.info(f"Cost function {cost_function!r} minimized: cost {result.cost:.4e} ({result.message})")
    return result
