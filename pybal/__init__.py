__version__ = "0.1.0"

__all__ = [
    # Core classes
    "BALProblem",
    "Camera",
    "Point3D",
    "BALData",
    # Cost functions
    "CostFunction",
    "ReprojectionCostFunction",
    "ToyCostFunction",
    "create_cost_function",
    "create_toy_cost_function",
    # Errors
    "BALError",
    "FileAccessError",
    "MalformedDatasetError",
    "IndexOutOfRangeError",
    # Types & Constants
    "CameraParam",
    "CAMERA_BLOCK_SIZE",
    "POINT_BLOCK_SIZE",
    "RESIDUAL_SIZE",
    # IO Functions
    "load",
    "read_bal",
    "write_bal",
    # Projection model
    "angle_axis_rotate_point",
    "project_point",
    "reprojection_residual",
    "project",
    # Optimizer adapter
    "solve",
    "solve_cost_function",
    "jacobian_sparsity",
]

from .camera import Camera
from .point3d import Point3D
from .problem import BALProblem, load
from .cost_functions import (
    CostFunction,
    ReprojectionCostFunction,
    ToyCostFunction,
    create_cost_function,
    create_toy_cost_function,
)
from .errors import (
    BALError,
    FileAccessError,
    MalformedDatasetError,
    IndexOutOfRangeError,
)
from .types import (
    CameraParam,
    CAMERA_BLOCK_SIZE,
    POINT_BLOCK_SIZE,
    RESIDUAL_SIZE,
)
from .io import BALData, read_bal, write_bal
from .projection import (
    angle_axis_rotate_point,
    project_point,
    reprojection_residual,
    project,
)
from .solver import solve, solve_cost_function
from .utils import jacobian_sparsity
