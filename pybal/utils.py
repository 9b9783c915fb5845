import numpy as np
from numpy.typing import NDArray
from scipy.sparse import lil_matrix
from typing import Tuple, TYPE_CHECKING

from .types import CAMERA_BLOCK_SIZE, POINT_BLOCK_SIZE, RESIDUAL_SIZE

# Avoid circular import for type hinting
if TYPE_CHECKING:
    from .problem import BALProblem


def pack_parameters(cameras: NDArray[np.float64], points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Flatten (N, 9) cameras and (M, 3) points into one parameter vector."""
    return np.hstack((np.asarray(cameras, dtype=np.float64).ravel(),
                      np.asarray(points, dtype=np.float64).ravel()))


def unpack_parameters(x: NDArray[np.float64], num_cameras: int,
                      num_points: int) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Split a parameter vector into (N, 9) camera and (M, 3) point views."""
    split = CAMERA_BLOCK_SIZE * num_cameras
    cameras = x[:split].reshape((num_cameras, CAMERA_BLOCK_SIZE))
    points = x[split:].reshape((num_points, POINT_BLOCK_SIZE))
    return cameras, points


def jacobian_sparsity(problem: 'BALProblem') -> lil_matrix:
    """
    Sparsity pattern of the residual Jacobian of a BAL problem.

    Both residuals of observation i depend only on the 9 parameters of its
    camera and the 3 parameters of its point.

    Returns:
        (2*K, 9*N + 3*M) matrix with ones where the Jacobian may be non-zero.
    """
    camera_indices = problem.camera_indices
    point_indices = problem.point_indices
    point_offset = CAMERA_BLOCK_SIZE * problem.num_cameras()

    m = RESIDUAL_SIZE * camera_indices.size
    n = problem.num_parameters()
    A = lil_matrix((m, n), dtype=int)

    i = np.arange(camera_indices.size)
    for s in range(CAMERA_BLOCK_SIZE):
        A[RESIDUAL_SIZE * i, camera_indices * CAMERA_BLOCK_SIZE + s] = 1
        A[RESIDUAL_SIZE * i + 1, camera_indices * CAMERA_BLOCK_SIZE + s] = 1

    for s in range(POINT_BLOCK_SIZE):
        A[RESIDUAL_SIZE * i, point_offset + point_indices * POINT_BLOCK_SIZE + s] = 1
        A[RESIDUAL_SIZE * i + 1, point_offset + point_indices * POINT_BLOCK_SIZE + s] = 1

    return A
