import bz2
import os
import logging
from typing import IO, Union, TYPE_CHECKING

from .data import BALData
from .text import read_bal_text, write_bal_text, read_bal_tokens
from ..errors import FileAccessError, MalformedDatasetError

# Avoid circular import for type hinting
if TYPE_CHECKING:
    from ..problem import BALProblem

logger = logging.getLogger(__name__)

__all__ = [
    "BALData",
    "read_bal",
    "write_bal",
    "read_bal_tokens",
]


def _open_text(path: str, mode: str) -> IO[str]:
    """Open `path` as text, decompressing bz2 archives on the fly."""
    if path.endswith(".bz2"):
        logger.debug(f"Opening bz2 compressed BAL file '{path}'")
        return bz2.open(path, mode + "t")
    logger.debug(f"Opening BAL file '{path}'")
    return open(path, mode)


def read_bal(path: str) -> BALData:
    """
    Reads a Bundle Adjustment in the Large dataset into NumPy-based arrays.

    Files whose name ends in '.bz2' are decompressed transparently.

    Args:
        path: Path to the BAL text file.

    Returns:
        BALData object holding counts, index arrays, observations and the
        packed parameter buffer.

    Raises:
        FileAccessError: If the path does not exist or cannot be opened.
        MalformedDatasetError: If the content does not follow the BAL format.
    """
    if not os.path.isfile(path):
        raise FileAccessError(f"BAL file not found: {path}")

    try:
        fid = _open_text(path, "r")
    except OSError as e:
        raise FileAccessError(f"Could not open BAL file '{path}': {e}") from e

    with fid:
        try:
            return read_bal_text(fid)
        except (OSError, EOFError, UnicodeDecodeError) as e:
            # Corrupt compressed stream or binary garbage
            raise MalformedDatasetError(f"Invalid BAL data file '{path}': {e}") from e


def write_bal(data: Union[BALData, 'BALProblem'], path: str) -> None:
    """
    Writes a dataset to `path` in the BAL text format.

    Args:
        data: Either a BALData object or a BALProblem object.
        path: Output file path. A '.bz2' suffix selects bz2 compression.
    """
    # Need to import BALProblem locally to avoid circular dependency at module level
    from ..problem import BALProblem
    if isinstance(data, BALProblem):
        data = data.get_internal_data()
    elif not isinstance(data, BALData):
        raise TypeError("Input 'data' must be a BALProblem object or a BALData object")

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with _open_text(path, "w") as fid:
        write_bal_text(data, fid)
    logger.debug(f"Wrote BAL file '{path}'")
