import numpy as np
from numpy.typing import NDArray

from .projection import project_point
from .types import CAMERA_BLOCK_SIZE, CameraParam, ROTATION_SLICE, TRANSLATION_SLICE


class Camera:
    """
    Represents one BAL camera as a typed view over its 9 parameter block.
    NOTE: Instances are created on demand by BALProblem.camera() and do not
    own their data: writing a field writes the problem's parameter buffer.
    """

    index: int
    params: NDArray[np.float64]  # Shape (9,), view into the parameter buffer

    def __init__(self, index: int, params: NDArray[np.float64]):
        """
        Initializes a Camera view.

        Args:
            index: Camera index within the dataset.
            params: Array of 9 camera parameters. Kept by reference.

        Raises:
            ValueError: If `params` is not a float64 array of shape (9,).
        """
        if not isinstance(params, np.ndarray) or params.shape != (CAMERA_BLOCK_SIZE,):
            raise ValueError(f"Camera parameters must be an array of shape ({CAMERA_BLOCK_SIZE},)")
        if params.dtype != np.float64:
            raise ValueError("Camera parameters must be float64")
        self.index = index
        self.params = params

    @property
    def angle_axis(self) -> NDArray[np.float64]:
        """Angle-axis rotation, a view of shape (3,)."""
        return self.params[ROTATION_SLICE]

    @property
    def translation(self) -> NDArray[np.float64]:
        """Translation, a view of shape (3,)."""
        return self.params[TRANSLATION_SLICE]

    @property
    def focal(self) -> float:
        return float(self.params[CameraParam.FOCAL.value])

    @focal.setter
    def focal(self, value: float) -> None:
        self.params[CameraParam.FOCAL.value] = value

    @property
    def l1(self) -> float:
        return float(self.params[CameraParam.L1.value])

    @l1.setter
    def l1(self, value: float) -> None:
        self.params[CameraParam.L1.value] = value

    @property
    def l2(self) -> float:
        return float(self.params[CameraParam.L2.value])

    @l2.setter
    def l2(self, value: float) -> None:
        self.params[CameraParam.L2.value] = value

    def get_distortion_params(self) -> NDArray[np.float64]:
        """Returns the radial distortion coefficients (l1, l2) as a view."""
        return self.params[CameraParam.L1.value:CameraParam.L2.value + 1]

    def has_distortion(self) -> bool:
        """Checks if any radial distortion coefficient is non-zero."""
        return bool(np.any(self.get_distortion_params() != 0.0))

    def project(self, xyz) -> NDArray[np.float64]:
        """Projects a world point to pixel coordinates, shape (2,)."""
        return project_point(self.params, np.asarray(xyz, dtype=np.float64))

    def __repr__(self) -> str:
        params_str = np.array2string(self.params, precision=3, separator=', ', suppress_small=True)
        return f"Camera(index={self.index}, params={params_str})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Camera):
            return NotImplemented
        return self.index == other.index and np.array_equal(self.params, other.params)

    # Mutable view, not hashable
    __hash__ = None  # type: ignore[assignment]
