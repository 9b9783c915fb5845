import numpy as np
from numpy.typing import NDArray

from .types import POINT_BLOCK_SIZE


class Point3D:
    """
    Represents one BAL point as a typed view over its 3 parameter block.
    NOTE: Instances are created on demand by BALProblem.point(); `xyz` is a
    view into the problem's parameter buffer.
    """

    index: int
    xyz: NDArray[np.float64]  # Shape (3,) [x, y, z]

    def __init__(self, index: int, xyz: NDArray[np.float64]):
        if not isinstance(xyz, np.ndarray) or xyz.shape != (POINT_BLOCK_SIZE,):
            raise ValueError(f"xyz must be an array of shape ({POINT_BLOCK_SIZE},)")
        if xyz.dtype != np.float64:
            raise ValueError("xyz must be float64")
        self.index = index
        self.xyz = xyz

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point3D):
            return NotImplemented
        return self.index == other.index and np.array_equal(self.xyz, other.xyz)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        xyz_str = np.array2string(self.xyz, precision=3, separator=', ', suppress_small=True)
        return f"Point3D(index={self.index}, xyz={xyz_str})"
