"""
Cost function objects consumed by a nonlinear least-squares optimizer.

A cost function maps its parameter blocks to a residual vector. It declares
the number of residuals and the size of each parameter block, and evaluates
the residuals with a generic body so that the optimizer's differentiation
mechanism can run the same code with its own numeric type. No derivatives
are computed here.
"""
import numpy as np
from typing import Any, Sequence, Tuple

from .projection import reprojection_residual
from .types import CAMERA_BLOCK_SIZE, POINT_BLOCK_SIZE, RESIDUAL_SIZE


def _check_block(block: Any, size: int, name: str) -> None:
    if len(block) != size:
        raise ValueError(f"{name} block must have {size} values, got {len(block)}")


class CostFunction:
    """Base class: fixed residual count and parameter block sizes."""

    num_residuals: int
    parameter_block_sizes: Tuple[int, ...]

    def evaluate(self, *blocks: Sequence[Any], xp: Any = np) -> Any:
        raise NotImplementedError

    def __call__(self, *blocks: Sequence[Any], xp: Any = np) -> Any:
        return self.evaluate(*blocks, xp=xp)


class ReprojectionCostFunction(CostFunction):
    """
    Reprojection error of one observation under the 9 parameter BAL camera.

    The observed pixel is captured at construction and never changes, so a
    single instance can be evaluated from several threads at once.
    """

    num_residuals = RESIDUAL_SIZE
    parameter_block_sizes = (CAMERA_BLOCK_SIZE, POINT_BLOCK_SIZE)

    observed_x: float
    observed_y: float

    def __init__(self, observed_x: float, observed_y: float):
        self.observed_x = float(observed_x)
        self.observed_y = float(observed_y)

    def evaluate(self, camera: Sequence[Any], point: Sequence[Any], xp: Any = np) -> Any:  # type: ignore[override]
        """
        Residual (predicted - observed) for the given camera and point blocks.

        Args:
            camera: 9 camera parameters.
            point: 3 point coordinates.
            xp: Array namespace used for sqrt/sin/cos/stack.

        Returns:
            Residual array of shape (2,).
        """
        _check_block(camera, CAMERA_BLOCK_SIZE, "Camera")
        _check_block(point, POINT_BLOCK_SIZE, "Point")
        return reprojection_residual(camera, point, self.observed_x, self.observed_y, xp=xp)

    def __repr__(self) -> str:
        return f"ReprojectionCostFunction(observed_x={self.observed_x}, observed_y={self.observed_y})"


class ToyCostFunction(CostFunction):
    """residual = 10 - x for a single scalar parameter x."""

    num_residuals = 1
    parameter_block_sizes = (1,)

    def evaluate(self, x: Sequence[Any], xp: Any = np) -> Any:  # type: ignore[override]
        _check_block(x, 1, "Parameter")
        return xp.stack([10.0 - x[0]])

    def __repr__(self) -> str:
        return "ToyCostFunction()"


def create_cost_function(observed_x: float, observed_y: float) -> ReprojectionCostFunction:
    """Factory for the reprojection cost function of one observation."""
    return ReprojectionCostFunction(observed_x, observed_y)


def create_toy_cost_function() -> ToyCostFunction:
    """Factory for the single scalar cost function residual = 10 - x."""
    return ToyCostFunction()
