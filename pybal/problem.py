import logging
import numpy as np
from numpy.typing import NDArray, ArrayLike
from typing import Dict, Optional, Tuple

from .camera import Camera
from .point3d import Point3D
from .projection import project
from .cost_functions import ReprojectionCostFunction, create_cost_function
from .errors import check_index, MalformedDatasetError
from .io import read_bal, write_bal, BALData
from .utils import pack_parameters, unpack_parameters
from .types import CAMERA_BLOCK_SIZE, POINT_BLOCK_SIZE, RESIDUAL_SIZE, num_parameters

logger = logging.getLogger(__name__)


class BALProblem:
    """
    Holds a Bundle Adjustment in the Large dataset: the observations, the
    observation-to-camera/point index arrays and one contiguous parameter
    buffer with all camera blocks followed by all point blocks.

    The parameter buffer is the only mutable state. Every block accessor
    returns a NumPy view into it, so an optimizer writing into a block updates
    the problem in place. Index and observation arrays are read-only.

    Attributes:
        path (Optional[str]): File the problem was loaded from or last saved to.
    """
    path: Optional[str]

    _num_cameras: int
    _num_points: int
    _num_observations: int

    _camera_indices: NDArray[np.int64]  # (K,)
    _point_indices: NDArray[np.int64]   # (K,)
    _observations: NDArray[np.float64]  # (K, 2)
    _parameters: NDArray[np.float64]    # (9*N + 3*M,)

    def __init__(self, data: BALData, path: Optional[str] = None) -> None:
        """
        Builds a problem around already parsed BAL data.

        Args:
            data: Parsed dataset. Its arrays are adopted, not copied.
            path: File the data came from, if any.

        Raises:
            MalformedDatasetError: If the arrays are inconsistent with the counts.
        """
        self.path = path

        self._num_cameras = int(data.num_cameras)
        self._num_points = int(data.num_points)
        self._num_observations = int(data.num_observations)

        self._camera_indices = data.camera_indices
        self._point_indices = data.point_indices
        self._observations = data.observations
        self._parameters = data.parameters

        self._verify_consistency()

        for array in (self._camera_indices, self._point_indices, self._observations):
            array.flags.writeable = False

    @classmethod
    def load(cls, path: str) -> 'BALProblem':
        """
        Loads a BAL problem from a text file ('.bz2' compressed files accepted).

        Raises:
            FileAccessError: If the file does not exist or cannot be opened.
            MalformedDatasetError: If the file does not follow the BAL format.
        """
        problem = cls(read_bal(path), path=path)
        logger.info(f"Loaded BAL problem from '{path}': {problem._num_cameras} cameras, "
                    f"{problem._num_points} points, {problem._num_observations} observations")
        return problem

    @classmethod
    def from_arrays(cls, cameras: ArrayLike, points: ArrayLike, camera_indices: ArrayLike,
                    point_indices: ArrayLike, observations: ArrayLike) -> 'BALProblem':
        """
        Builds a problem from in-memory arrays. All inputs are copied.

        Args:
            cameras: (N, 9) camera parameters.
            points: (M, 3) point positions.
            camera_indices: (K,) camera index of each observation.
            point_indices: (K,) point index of each observation.
            observations: (K, 2) observed pixel coordinates.
        """
        cameras_arr = np.array(cameras, dtype=np.float64).reshape((-1, CAMERA_BLOCK_SIZE))
        points_arr = np.array(points, dtype=np.float64).reshape((-1, POINT_BLOCK_SIZE))

        data = BALData()
        data.num_cameras = cameras_arr.shape[0]
        data.num_points = points_arr.shape[0]
        data.camera_indices = np.array(camera_indices, dtype=np.int64).reshape(-1)
        data.point_indices = np.array(point_indices, dtype=np.int64).reshape(-1)
        data.observations = np.array(observations, dtype=np.float64).reshape((-1, RESIDUAL_SIZE))
        data.num_observations = data.observations.shape[0]
        data.parameters = pack_parameters(cameras_arr, points_arr)
        return cls(data)

    def _verify_consistency(self) -> None:
        n_obs = self._num_observations
        if self._parameters.shape != (num_parameters(self._num_cameras, self._num_points),):
            raise MalformedDatasetError(
                f"Parameter buffer has shape {self._parameters.shape}, expected "
                f"({num_parameters(self._num_cameras, self._num_points)},)")
        if self._parameters.dtype != np.float64 or not self._parameters.flags.c_contiguous:
            raise MalformedDatasetError("Parameter buffer must be a contiguous float64 array")
        if self._camera_indices.shape != (n_obs,) or self._point_indices.shape != (n_obs,):
            raise MalformedDatasetError(f"Index arrays must have shape ({n_obs},)")
        if self._observations.shape != (n_obs, RESIDUAL_SIZE):
            raise MalformedDatasetError(f"Observations must have shape ({n_obs}, {RESIDUAL_SIZE})")
        if np.any((self._camera_indices < 0) | (self._camera_indices >= self._num_cameras)):
            raise MalformedDatasetError("Camera index out of range in observations")
        if np.any((self._point_indices < 0) | (self._point_indices >= self._num_points)):
            raise MalformedDatasetError("Point index out of range in observations")

    def get_internal_data(self) -> BALData:
        """Returns the internal arrays wrapped in a BALData object (no copies)."""
        data = BALData()
        data.num_cameras = self._num_cameras
        data.num_points = self._num_points
        data.num_observations = self._num_observations
        data.camera_indices = self._camera_indices
        data.point_indices = self._point_indices
        data.observations = self._observations
        data.parameters = self._parameters
        return data

    def save(self, output_path: Optional[str] = None) -> None:
        """
        Saves the current parameter values in BAL format.

        Args:
            output_path: Destination file. If None, overwrites `self.path`.
        """
        save_path = output_path if output_path is not None else self.path
        if save_path is None:
            raise ValueError("No output path given and the problem was not loaded from a file.")
        write_bal(self, save_path)
        self.path = save_path

    # --- Counts ---

    def num_cameras(self) -> int:
        return self._num_cameras

    def num_points(self) -> int:
        return self._num_points

    def num_observations(self) -> int:
        return self._num_observations

    def num_parameters(self) -> int:
        return self._parameters.shape[0]

    def num_residuals(self) -> int:
        return RESIDUAL_SIZE * self._num_observations

    # --- Raw arrays ---

    @property
    def parameters(self) -> NDArray[np.float64]:
        """The packed parameter buffer itself (mutable, not a copy)."""
        return self._parameters

    @property
    def camera_indices(self) -> NDArray[np.int64]:
        return self._camera_indices

    @property
    def point_indices(self) -> NDArray[np.int64]:
        return self._point_indices

    def observations(self) -> NDArray[np.float64]:
        """Snapshot of all observations, shape (K, 2)."""
        return self._observations.copy()

    def cameras(self) -> NDArray[np.float64]:
        """Snapshot of all camera blocks, shape (N, 9)."""
        return self.mutable_cameras().copy()

    def points(self) -> NDArray[np.float64]:
        """Snapshot of all point blocks, shape (M, 3)."""
        return self.mutable_points().copy()

    def mutable_cameras(self) -> NDArray[np.float64]:
        """Camera region of the parameter buffer as an (N, 9) view."""
        split = CAMERA_BLOCK_SIZE * self._num_cameras
        return self._parameters[:split].reshape((self._num_cameras, CAMERA_BLOCK_SIZE))

    def mutable_points(self) -> NDArray[np.float64]:
        """Point region of the parameter buffer as an (M, 3) view."""
        split = CAMERA_BLOCK_SIZE * self._num_cameras
        return self._parameters[split:].reshape((self._num_points, POINT_BLOCK_SIZE))

    # --- Block accessors ---

    def camera_block(self, camera_idx: int) -> NDArray[np.float64]:
        """View of the 9 parameters of camera `camera_idx`."""
        idx = check_index(camera_idx, self._num_cameras, "Camera")
        start = CAMERA_BLOCK_SIZE * idx
        return self._parameters[start:start + CAMERA_BLOCK_SIZE]

    def point_block(self, point_idx: int) -> NDArray[np.float64]:
        """View of the 3 parameters of point `point_idx`."""
        idx = check_index(point_idx, self._num_points, "Point")
        start = CAMERA_BLOCK_SIZE * self._num_cameras + POINT_BLOCK_SIZE * idx
        return self._parameters[start:start + POINT_BLOCK_SIZE]

    def camera_index(self, i: int) -> int:
        """Camera index of observation `i`."""
        return int(self._camera_indices[check_index(i, self._num_observations, "Observation")])

    def point_index(self, i: int) -> int:
        """Point index of observation `i`."""
        return int(self._point_indices[check_index(i, self._num_observations, "Observation")])

    def mutable_camera_for_observation(self, i: int) -> NDArray[np.float64]:
        return self.camera_block(self.camera_index(i))

    def mutable_point_for_observation(self, i: int) -> NDArray[np.float64]:
        return self.point_block(self.point_index(i))

    def observation(self, i: int) -> Tuple[float, float]:
        """Observed pixel (x, y) of observation `i`."""
        x, y = self._observations[check_index(i, self._num_observations, "Observation")]
        return float(x), float(y)

    def camera(self, camera_idx: int) -> Camera:
        return Camera(int(camera_idx), self.camera_block(camera_idx))

    def point(self, point_idx: int) -> Point3D:
        return Point3D(int(point_idx), self.point_block(point_idx))

    def cost_function(self, i: int) -> ReprojectionCostFunction:
        """Reprojection cost function bound to the observed pixel of observation `i`."""
        return create_cost_function(*self.observation(i))

    # --- Evaluation ---

    def residuals(self, x: Optional[ArrayLike] = None) -> NDArray[np.float64]:
        """
        Computes all reprojection residuals at once.

        Args:
            x: Optional candidate parameter vector with the layout of
               `parameters`. Defaults to the current buffer.

        Returns:
            Flat array [rx_0, ry_0, rx_1, ry_1, ...] of length 2*K.
        """
        params = self._parameters if x is None else np.asarray(x, dtype=np.float64)
        if params.shape != self._parameters.shape:
            raise ValueError(f"Parameter vector must have shape {self._parameters.shape}, got {params.shape}")

        cameras, points = unpack_parameters(params, self._num_cameras, self._num_points)
        points_proj = project(points[self._point_indices], cameras[self._camera_indices])
        return (points_proj - self._observations).ravel()

    def cost(self, x: Optional[ArrayLike] = None) -> float:
        """Half the sum of squared residuals, the objective least-squares solvers minimize."""
        r = self.residuals(x)
        return 0.5 * float(np.dot(r, r))

    def get_statistics(self) -> Dict[str, float]:
        """Returns summary counts of the problem."""
        obs_per_camera = np.bincount(self._camera_indices, minlength=self._num_cameras)
        obs_per_point = np.bincount(self._point_indices, minlength=self._num_points)
        return {
            "num_cameras": float(self._num_cameras),
            "num_points": float(self._num_points),
            "num_observations": float(self._num_observations),
            "num_parameters": float(self.num_parameters()),
            "num_residuals": float(self.num_residuals()),
            "mean_observations_per_camera": float(obs_per_camera.mean()) if self._num_cameras > 0 else 0.0,
            "mean_track_length": float(obs_per_point.mean()) if self._num_points > 0 else 0.0,
        }

    def __repr__(self) -> str:
        return (f"BALProblem(num_cameras={self._num_cameras}, num_points={self._num_points}, "
                f"num_observations={self._num_observations})")


def load(path: str) -> BALProblem:
    """Loads a BAL problem from `path`. See `BALProblem.load`."""
    return BALProblem.load(path)
