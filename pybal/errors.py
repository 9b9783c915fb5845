import numpy as np
from typing import Optional


class BALError(Exception):
    """Base class for all errors raised by pybal."""


class FileAccessError(BALError, FileNotFoundError):
    """The dataset path does not exist or cannot be opened for reading."""


class MalformedDatasetError(BALError, ValueError):
    """The dataset content does not follow the BAL text format.

    Attributes:
        section: Part of the file being parsed ("header", "observations", "parameters").
        position: Zero-based index of the offending token within the file, if known.
    """

    section: Optional[str]
    position: Optional[int]

    def __init__(self, message: str, section: Optional[str] = None, position: Optional[int] = None):
        if position is not None:
            message = f"{message} (token {position})"
        super().__init__(message)
        self.section = section
        self.position = position


class IndexOutOfRangeError(BALError, IndexError):
    """An accessor was called with an index outside the loaded dataset."""


def check_index(index: int, size: int, what: str) -> int:
    """Validate `index` against [0, size) and return it as a plain int.

    Negative values are rejected rather than treated as offsets from the end.
    """
    if isinstance(index, (bool, np.bool_)):
        raise IndexOutOfRangeError(f"{what} index must be an integer, got {index!r}")
    try:
        idx = int(index)
    except (TypeError, ValueError, OverflowError):
        raise IndexOutOfRangeError(f"{what} index must be an integer, got {index!r}")
    if idx != index or idx < 0 or idx >= size:
        raise IndexOutOfRangeError(f"{what} index {index} out of range [0, {size})")
    return idx
