import numpy as np
from numpy.typing import NDArray

from ..types import num_parameters


class BALData:
    __slots__ = ['num_cameras', 'num_points', 'num_observations',
                 'camera_indices', 'point_indices', 'observations', 'parameters']

    num_cameras: int
    num_points: int
    num_observations: int
    camera_indices: NDArray[np.int64]  # Shape (K,)
    point_indices: NDArray[np.int64]   # Shape (K,)
    observations: NDArray[np.float64]  # Shape (K, 2)
    parameters: NDArray[np.float64]    # Shape (9*N + 3*M,)

    def __init__(self):
        self.num_cameras = 0
        self.num_points = 0
        self.num_observations = 0
        self.camera_indices = np.empty(0, dtype=np.int64)
        self.point_indices = np.empty(0, dtype=np.int64)
        self.observations = np.empty((0, 2), dtype=np.float64)
        self.parameters = np.empty(0, dtype=np.float64)

    @property
    def num_parameters(self) -> int:
        return num_parameters(self.num_cameras, self.num_points)
