# tepid/quality_control.py
# Input validation and degenerate-neuron detection
# Centralizes the error taxonomy used across the TE-PID pipeline

import logging
import numbers
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class QualityAction(Enum):
    """Actions to take when a trial fails validation in a batch run."""
    WARN = "warn"  # Log warning, continue with the next trial
    SKIP = "skip"  # Record the trial in the error log, continue
    ERROR = "error"  # Raise exception


class TEPIDError(Exception):
    """Base class for all errors raised by the TE-PID pipeline."""
    pass


class ConfigurationError(TEPIDError, ValueError):
    """Raised when a run parameter (delay, threshold, resolution) is invalid."""
    pass


class ValidationError(TEPIDError, ValueError):
    """Raised when input data or triplet lists are malformed."""
    pass


@dataclass(frozen=True)
class DegenerateNeuron:
    """Non-fatal diagnostic: a neuron whose spike train takes a single value."""
    neuron: int

    @property
    def message(self) -> str:
        return (f"Neuron {self.neuron} has zero entropy. "
                f"Discarding all triplets containing neuron {self.neuron}.")


# --- Parameter checks ---

def _is_integer(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, numbers.Integral):
        return True
    return isinstance(value, numbers.Real) and float(value).is_integer()


def validate_delay(delay) -> int:
    """Check that delay is a positive integer and return it as int."""
    if np.ndim(delay) != 0:
        raise ConfigurationError("Input time-delay must be a scalar.")
    if not _is_integer(delay) or delay < 1:
        raise ConfigurationError(f"Input time-delay must be a positive integer, got {delay!r}.")
    return int(delay)


def validate_threshold(threshold) -> float:
    """Check that a functional-network threshold lies in [0, 1]."""
    if np.ndim(threshold) != 0 or isinstance(threshold, bool):
        raise ConfigurationError("Threshold must be a scalar.")
    if not isinstance(threshold, numbers.Real) or not 0 <= threshold <= 1:
        raise ConfigurationError(f"Threshold must be between 0 and 1, got {threshold!r}.")
    return float(threshold)


def validate_time_resolution(time_resolution) -> Optional[int]:
    if time_resolution is None:
        return None
    if not _is_integer(time_resolution) or time_resolution < 1:
        raise ConfigurationError(
            f"Time resolution must be a positive integer, got {time_resolution!r}.")
    return int(time_resolution)


def validate_n_jobs(n_jobs) -> int:
    if not _is_integer(n_jobs) or n_jobs == 0:
        raise ConfigurationError(f"n_jobs must be a non-zero integer, got {n_jobs!r}.")
    return int(n_jobs)


# --- Data checks ---

def validate_equal_length(*variables: np.ndarray) -> int:
    """Check that all variables have the same number of observations.

    Returns:
        The common number of observations.
    """
    lengths = [np.shape(v)[0] for v in variables]
    if len(set(lengths)) > 1:
        raise ValidationError(f"Time-series are not of equal length: {lengths}")
    return lengths[0]


def validate_delay_for_length(delay: int, n_samples: int) -> None:
    """The delay must leave at least one (past, future) pair."""
    if delay > n_samples - 1:
        raise ValidationError(
            f"Time-delay {delay} too large for series of length {n_samples} "
            f"(must be <= {n_samples - 1}).")


def validate_matrix(data) -> np.ndarray:
    """Return data as a 2-D array (rows = time steps, columns = neurons)."""
    matrix = np.asarray(data)
    if matrix.ndim == 1:
        matrix = matrix.reshape(-1, 1)
    if matrix.ndim != 2:
        raise ValidationError(f"Input dataset must be a 2-D matrix, got {matrix.ndim} dimensions.")
    if matrix.shape[0] == 0:
        raise ValidationError("Input dataset has no observations.")
    return matrix


def validate_triplet_list(triplets, n_neurons: int) -> np.ndarray:
    """Check an explicit (target, source1, source2) list and return it as int array."""
    array = np.asarray(triplets)
    if array.size == 0:
        return np.empty((0, 3), dtype=int)
    if array.ndim == 1 and array.size == 3:
        array = array.reshape(1, 3)
    if array.ndim != 2:
        raise ValidationError("List of neuron triplets must be a matrix.")
    if array.shape[1] != 3:
        raise ValidationError(
            f"List of neuron triplets must have 3 columns, got {array.shape[1]}.")
    if not np.issubdtype(array.dtype, np.integer):
        if not np.issubdtype(array.dtype, np.number) or np.any(array != np.round(array)):
            raise ValidationError("Neuron indices in triplet list must be integers.")
        array = array.astype(int)
    if np.any(array < 0) or np.any(array >= n_neurons):
        raise ValidationError(
            "Neuron indices in given triplet list must lie in "
            f"[0, {n_neurons - 1}] for a dataset of {n_neurons} neurons.")
    return array.astype(int)


# --- Degenerate neurons ---

def is_degenerate(series: np.ndarray) -> bool:
    """A series with a single realized value carries zero entropy."""
    return np.unique(np.asarray(series)).size <= 1


def find_degenerate_neurons(matrix: np.ndarray,
                            neurons: Optional[Sequence[int]] = None) -> List[DegenerateNeuron]:
    """Report every neuron (column) among `neurons` whose spike train is constant."""
    if neurons is None:
        neurons = range(matrix.shape[1])
    found = []
    for i in neurons:
        if is_degenerate(matrix[:, i]):
            diagnostic = DegenerateNeuron(int(i))
            logger.warning(diagnostic.message)
            found.append(diagnostic)
    return found
