"""
Camera projection model of the BAL datasets.

The camera is parameterized by 9 values: 3 for an angle-axis rotation, 3 for
the translation, 1 for the focal length and 2 for radial distortion. The
principal point is not modeled, it is assumed to be at the image center.

The scalar functions only use arithmetic operators, indexing and the
`sqrt`, `sin`, `cos`, `where` and `stack` functions of the `xp` namespace, with
no Python branches on values, so they can be evaluated with plain floats,
NumPy scalars or traced autodiff arrays such as `jax.numpy` values under
`jax.jit` and `jax.vmap`. They never mutate their inputs.
"""
import numpy as np
from numpy.typing import NDArray
from typing import Any, Sequence, Tuple

from .types import CameraParam, ROTATION_SLICE, TRANSLATION_SLICE

# At or below this squared angle the rotation is evaluated to first order
_EPSILON = np.finfo(np.float64).eps


def angle_axis_rotate_point(angle_axis: Sequence[Any], pt: Sequence[Any], xp: Any = np) -> Tuple[Any, Any, Any]:
    """Rotate `pt` by the rotation encoded in `angle_axis`.

    The rotation angle is the norm of `angle_axis` and the axis is its
    direction. Rodrigues' formula is used away from zero; near zero the
    first order expansion R = I + [w]x keeps the derivatives correct.

    Returns:
        The rotated point as a tuple of three values.
    """
    theta2 = angle_axis[0] * angle_axis[0] + angle_axis[1] * angle_axis[1] + angle_axis[2] * angle_axis[2]
    small = theta2 <= _EPSILON

    # Rodrigues' formula; where the first order form is selected it runs on a
    # stand-in angle of 1 and its result is discarded
    safe_theta2 = xp.where(small, 1.0, theta2)
    theta = xp.sqrt(safe_theta2)
    costheta = xp.cos(theta)
    sintheta = xp.sin(theta)
    theta_inverse = 1.0 / theta

    w0 = angle_axis[0] * theta_inverse
    w1 = angle_axis[1] * theta_inverse
    w2 = angle_axis[2] * theta_inverse

    w_cross_pt0 = w1 * pt[2] - w2 * pt[1]
    w_cross_pt1 = w2 * pt[0] - w0 * pt[2]
    w_cross_pt2 = w0 * pt[1] - w1 * pt[0]

    tmp = (w0 * pt[0] + w1 * pt[1] + w2 * pt[2]) * (1.0 - costheta)

    rotated0 = pt[0] * costheta + w_cross_pt0 * sintheta + w0 * tmp
    rotated1 = pt[1] * costheta + w_cross_pt1 * sintheta + w1 * tmp
    rotated2 = pt[2] * costheta + w_cross_pt2 * sintheta + w2 * tmp

    # First order: R = I + [angle_axis]x
    aa_cross_pt0 = angle_axis[1] * pt[2] - angle_axis[2] * pt[1]
    aa_cross_pt1 = angle_axis[2] * pt[0] - angle_axis[0] * pt[2]
    aa_cross_pt2 = angle_axis[0] * pt[1] - angle_axis[1] * pt[0]

    return (xp.where(small, pt[0] + aa_cross_pt0, rotated0),
            xp.where(small, pt[1] + aa_cross_pt1, rotated1),
            xp.where(small, pt[2] + aa_cross_pt2, rotated2))


def _predict(camera: Sequence[Any], point: Sequence[Any], xp: Any) -> Tuple[Any, Any]:
    p0, p1, p2 = angle_axis_rotate_point(camera[ROTATION_SLICE], point, xp=xp)

    t = CameraParam.TRANSLATION.value
    p0 = p0 + camera[t]
    p1 = p1 + camera[t + 1]
    p2 = p2 + camera[t + 2]

    # The camera looks down the negative z axis, hence the sign change
    x = -p0 / p2
    y = -p1 / p2

    # Second and fourth order radial distortion
    l1 = camera[CameraParam.L1.value]
    l2 = camera[CameraParam.L2.value]
    r2 = x * x + y * y
    distortion = 1.0 + r2 * (l1 + l2 * r2)

    focal = camera[CameraParam.FOCAL.value]
    return focal * distortion * x, focal * distortion * y


def project_point(camera: Sequence[Any], point: Sequence[Any], xp: Any = np) -> Any:
    """Predicted pixel position of `point` seen by `camera`, shape (2,)."""
    predicted_x, predicted_y = _predict(camera, point, xp)
    return xp.stack([predicted_x, predicted_y])


def reprojection_residual(camera: Sequence[Any], point: Sequence[Any],
                          observed_x: float, observed_y: float, xp: Any = np) -> Any:
    """
    Reprojection error of one observation.

    Args:
        camera: 9 camera parameters (rotation, translation, focal, l1, l2).
        point: 3D point in world coordinates.
        observed_x: Observed pixel x coordinate.
        observed_y: Observed pixel y coordinate.
        xp: Array namespace providing `sqrt`, `sin`, `cos` and `stack`.

    Returns:
        Residual (predicted - observed), shape (2,).
    """
    predicted_x, predicted_y = _predict(camera, point, xp)
    return xp.stack([predicted_x - observed_x, predicted_y - observed_y])


def rotate(points: NDArray[np.float64], rot_vecs: NDArray[np.float64]) -> NDArray[np.float64]:
    """Rotate each row of `points` by the matching row of `rot_vecs`.

    Vectorized counterpart of `angle_axis_rotate_point`, same operation order.
    """
    theta2 = np.sum(rot_vecs * rot_vecs, axis=1)[:, np.newaxis]
    small = theta2 <= _EPSILON

    with np.errstate(invalid="ignore", divide="ignore"):
        theta = np.sqrt(theta2)
        v = rot_vecs * (1.0 / theta)
    v = np.where(small, 0.0, v)

    cos_theta = np.cos(theta)
    sin_theta = np.sin(theta)
    dot = np.sum(v * points, axis=1)[:, np.newaxis]
    tmp = dot * (1.0 - cos_theta)

    rotated = points * cos_theta + np.cross(v, points) * sin_theta + v * tmp
    return np.where(small, points + np.cross(rot_vecs, points), rotated)


def project(points: NDArray[np.float64], cameras: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert 3D points to 2D by projecting them with their cameras.

    Args:
        points: (N, 3) world points.
        cameras: (N, 9) camera parameters, row i observes point i.

    Returns:
        (N, 2) predicted pixel positions.
    """
    points_proj = rotate(points, cameras[:, ROTATION_SLICE])
    points_proj = points_proj + cameras[:, TRANSLATION_SLICE]
    points_proj = -points_proj[:, :2] / points_proj[:, 2, np.newaxis]

    f = cameras[:, CameraParam.FOCAL.value]
    l1 = cameras[:, CameraParam.L1.value]
    l2 = cameras[:, CameraParam.L2.value]
    r2 = points_proj[:, 0] * points_proj[:, 0] + points_proj[:, 1] * points_proj[:, 1]
    distortion = 1.0 + r2 * (l1 + l2 * r2)
    return points_proj * (f * distortion)[:, np.newaxis]
