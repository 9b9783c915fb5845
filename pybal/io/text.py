import logging
import re
import numpy as np
from numpy.typing import NDArray
from typing import Callable, List, TextIO

from .data import BALData
from ..errors import MalformedDatasetError
from ..types import OBSERVATION_RECORD_SIZE, num_parameters

logger = logging.getLogger(__name__)

HEADER_SIZE = 3

# Tokens accepted by fscanf "%d" and "%lf". Python's int() and float() also take
# underscores and non-ASCII digits, which are not valid in a BAL file.
_INT_TOKEN = re.compile(r"[+-]?[0-9]+")
_FLOAT_TOKEN = re.compile(r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
                          re.IGNORECASE)


def _strict_int(token: str) -> int:
    if _INT_TOKEN.fullmatch(token) is None:
        raise ValueError(f"not an integer token: {token!r}")
    return int(token)


def _strict_float(token: str) -> float:
    if _FLOAT_TOKEN.fullmatch(token) is None:
        raise ValueError(f"not a floating point token: {token!r}")
    return float(token)


def _parse_tokens(tokens: List[str], start: int, stride: int, convert: Callable, dtype: type,
                  section: str, kind: str) -> np.ndarray:
    """Convert a list of tokens into a 1D array of `dtype`.

    `start` and `stride` map a position in `tokens` back to its position in the
    file so that error messages point at the offending token.
    """
    try:
        return np.fromiter(map(convert, tokens), dtype=dtype, count=len(tokens))
    except (ValueError, OverflowError):
        pass

    # Slow path, only taken on malformed input: locate the first bad token
    for offset, token in enumerate(tokens):
        try:
            value = convert(token)
            np.array(value, dtype=dtype)
        except (ValueError, OverflowError):
            raise MalformedDatasetError(f"Invalid BAL data file: expected {kind} in {section}, found {token!r}",
                                        section=section, position=start + offset * stride)
    raise MalformedDatasetError(f"Invalid BAL data file: could not parse {section}", section=section)


def _check_available(available: int, required: int, start: int, section: str) -> None:
    if available < required:
        raise MalformedDatasetError(
            f"Invalid BAL data file: input ended in {section} after {available} of {required} expected values",
            section=section, position=start + available)


def _check_range(indices: NDArray[np.int64], upper: int, what: str) -> None:
    bad = np.flatnonzero((indices < 0) | (indices >= upper))
    if bad.size > 0:
        record = int(bad[0])
        raise MalformedDatasetError(
            f"Invalid BAL data file: observation {record} references {what} {int(indices[record])}, "
            f"valid range is [0, {upper})",
            section="observations", position=HEADER_SIZE + record * OBSERVATION_RECORD_SIZE)


def read_bal_tokens(tokens: List[str]) -> BALData:
    """Parse a whitespace-split BAL file into a BALData object.

    Args:
        tokens: All whitespace-delimited tokens of the file, in order.

    Returns:
        Fully populated BALData object.

    Raises:
        MalformedDatasetError: If a token does not parse as its expected type,
                               a count is negative, an index is out of range or
                               the input ends before all values were read.
    """
    _check_available(len(tokens), HEADER_SIZE, 0, "header")
    num_cameras, num_points, num_observations = (
        int(v) for v in _parse_tokens(tokens[:HEADER_SIZE], 0, 1, _strict_int, np.int64, "header", "an integer"))
    if num_cameras < 0 or num_points < 0 or num_observations < 0:
        raise MalformedDatasetError(
            f"Invalid BAL data file: negative count in header "
            f"({num_cameras} cameras, {num_points} points, {num_observations} observations)",
            section="header", position=0)

    # Observation records: camera_index point_index x y
    obs_start = HEADER_SIZE
    obs_required = OBSERVATION_RECORD_SIZE * num_observations
    obs_tokens = tokens[obs_start:obs_start + obs_required]
    step = OBSERVATION_RECORD_SIZE
    camera_indices = _parse_tokens(obs_tokens[0::step], obs_start, step, _strict_int, np.int64,
                                   "observations", "an integer camera index")
    point_indices = _parse_tokens(obs_tokens[1::step], obs_start + 1, step, _strict_int, np.int64,
                                  "observations", "an integer point index")
    xs = _parse_tokens(obs_tokens[2::step], obs_start + 2, step, _strict_float, np.float64,
                       "observations", "a floating point pixel coordinate")
    ys = _parse_tokens(obs_tokens[3::step], obs_start + 3, step, _strict_float, np.float64,
                       "observations", "a floating point pixel coordinate")
    _check_available(len(obs_tokens), obs_required, obs_start, "observations")

    # Parameters: camera blocks first, then point blocks
    params_start = obs_start + obs_required
    params_required = num_parameters(num_cameras, num_points)
    params_tokens = tokens[params_start:params_start + params_required]
    parameters = _parse_tokens(params_tokens, params_start, 1, _strict_float, np.float64,
                               "parameters", "a floating point parameter")
    _check_available(len(params_tokens), params_required, params_start, "parameters")

    _check_range(camera_indices, num_cameras, "camera")
    _check_range(point_indices, num_points, "point")

    trailing = len(tokens) - (params_start + params_required)
    if trailing > 0:
        logger.warning(f"Ignoring {trailing} trailing token(s) after the last BAL parameter")

    data = BALData()
    data.num_cameras = num_cameras
    data.num_points = num_points
    data.num_observations = num_observations
    data.camera_indices = camera_indices
    data.point_indices = point_indices
    data.observations = np.column_stack((xs, ys)) if num_observations > 0 else np.empty((0, 2), dtype=np.float64)
    data.parameters = parameters
    return data


def read_bal_text(fid: TextIO) -> BALData:
    """Read a BAL dataset from an open text stream."""
    return read_bal_tokens(fid.read().split())


def write_bal_text(data: BALData, fid: TextIO) -> None:
    """Write a BAL dataset to an open text stream.

    Floats are written with their shortest round-trip representation so that
    reading the file back reproduces every value bitwise.

    Args:
        data: BALData object
        fid: Writable text stream
    """
    fid.write(f"{data.num_cameras} {data.num_points} {data.num_observations}\n")

    observations = data.observations.tolist()
    for camera_idx, point_idx, (x, y) in zip(data.camera_indices.tolist(),
                                             data.point_indices.tolist(),
                                             observations):
        fid.write(f"{camera_idx} {point_idx} {x!r} {y!r}\n")

    # One parameter per line, as in the published BAL files
    for value in data.parameters.tolist():
        fid.write(f"{value!r}\n")
