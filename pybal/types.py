from enum import Enum

# Number of scalars in each parameter block
CAMERA_BLOCK_SIZE = 9
POINT_BLOCK_SIZE = 3
RESIDUAL_SIZE = 2

# Number of tokens in one observation record: camera_index point_index x y
OBSERVATION_RECORD_SIZE = 4

class CameraParam(Enum):
    """Offsets of the named fields inside a camera parameter block."""
    ROTATION = 0     # angle-axis, 3 values
    TRANSLATION = 3  # 3 values
    FOCAL = 6
    L1 = 7           # second order radial distortion
    L2 = 8           # fourth order radial distortion

ROTATION_SLICE = slice(CameraParam.ROTATION.value, CameraParam.ROTATION.value + 3)
TRANSLATION_SLICE = slice(CameraParam.TRANSLATION.value, CameraParam.TRANSLATION.value + 3)


def num_parameters(num_cameras: int, num_points: int) -> int:
    """Length of the packed parameter buffer for the given counts."""
    return CAMERA_BLOCK_SIZE * num_cameras + POINT_BLOCK_SIZE * num_points
