# tepid/preprocessing.py
# Functions for loading spike-train matrices, orienting them,
# coarsening the time axis, and wrapping them as single- or multi-trial datasets.

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from tepid.quality_control import ValidationError, validate_matrix, validate_time_resolution

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SingleTrial:
    """One recording: rows are time steps, columns are neurons."""
    matrix: np.ndarray

    def __post_init__(self):
        matrix = validate_matrix(self.matrix).view()
        matrix.setflags(write=False)
        object.__setattr__(self, 'matrix', matrix)

    @property
    def n_neurons(self) -> int:
        return self.matrix.shape[1]


@dataclass(frozen=True)
class MultiTrial:
    """An ordered collection of trials processed with identical parameters."""
    trials: Tuple[SingleTrial, ...]

    def __len__(self) -> int:
        return len(self.trials)


Dataset = Union[SingleTrial, MultiTrial]


def orient(data, neurons_as_rows: bool = False) -> np.ndarray:
    """Return the matrix with one neuron per column.

    Set neurons_as_rows when the caller's data holds one neuron per row.
    """
    matrix = validate_matrix(data)
    if neurons_as_rows:
        matrix = matrix.T
    if matrix.shape[0] < matrix.shape[1]:
        logger.warning(
            "Input matrix has more columns (%d) than rows (%d). Each column should contain "
            "the entire time-series of a single neuron; pass neurons_as_rows=True to transpose.",
            matrix.shape[1], matrix.shape[0])
    return matrix


def as_dataset(data, neurons_as_rows: bool = False) -> Dataset:
    """Wrap raw input as a SingleTrial or MultiTrial.

    A 2-D array is a single trial. A 3-D array or a flat sequence of 2-D
    matrices is a multi-trial dataset; a list or tuple is always read as a
    collection of trials. Nested collections are rejected.
    """
    if isinstance(data, (SingleTrial, MultiTrial)):
        return data
    if isinstance(data, np.ndarray):
        if data.ndim == 3:
            return MultiTrial(tuple(SingleTrial(orient(m, neurons_as_rows)) for m in data))
        return SingleTrial(orient(data, neurons_as_rows))
    if isinstance(data, (list, tuple)):
        trials = []
        for i, item in enumerate(data):
            if isinstance(item, SingleTrial):
                trials.append(item)
                continue
            try:
                matrix = np.asarray(item)
            except ValueError:
                raise ValidationError("Input collection of trials must be one-dimensional.")
            if matrix.ndim != 2:
                raise ValidationError(
                    f"Trial {i} must be a 2-D matrix, got {matrix.ndim} dimensions. "
                    "Input collection of trials must be one-dimensional.")
            trials.append(SingleTrial(orient(matrix, neurons_as_rows)))
        return MultiTrial(tuple(trials))
    if isinstance(data, pd.DataFrame):
        return SingleTrial(orient(data.to_numpy(), neurons_as_rows))
    raise ValidationError(f"Input dataset must be a matrix or a collection of matrices, got {type(data).__name__}.")


def timebin(matrix: np.ndarray, time_resolution: int) -> np.ndarray:
    """Coarsen the time axis by grouping `time_resolution` consecutive rows.

    A bin holds 1 when any row in it has a spike (non-zero value), else 0.
    A trailing partial bin is kept. Resolution 1 leaves the matrix (and its
    alphabet) unchanged.
    """
    time_resolution = validate_time_resolution(time_resolution)
    matrix = validate_matrix(matrix)
    if time_resolution == 1:
        return matrix
    n_rows = matrix.shape[0]
    n_bins = -(-n_rows // time_resolution)
    starts = np.arange(n_bins) * time_resolution
    spikes = np.add.reduceat((matrix != 0).astype(int), starts, axis=0)
    return (spikes > 0).astype(int)


def load_spike_matrix(file_path: str, neurons_as_rows: bool = False,
                      header: Optional[bool] = None) -> np.ndarray:
    """Loads a CSV spike matrix.

    header=True reads the first row as neuron labels, header=False reads it as
    data, and None guesses: a non-numeric first row is a header.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValidationError: If the file is empty, unparsable or not numeric.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Data file not found at {file_path}")

    try:
        if header is None:
            data = pd.read_csv(file_path, header=None)
            if not all(pd.api.types.is_numeric_dtype(t) for t in data.dtypes):
                data = pd.read_csv(file_path)
        else:
            data = pd.read_csv(file_path, header=0 if header else None)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise ValidationError(f"Could not parse spike matrix {file_path}: {e}") from e

    if data.empty:
        raise ValidationError(f"Spike matrix {file_path} has no observations.")
    non_numeric = [c for c, t in data.dtypes.items() if not pd.api.types.is_numeric_dtype(t)]
    if non_numeric:
        raise ValidationError(f"Spike matrix {file_path} has non-numeric columns: {non_numeric}")
    return orient(data.to_numpy(), neurons_as_rows)


def load_dataset(paths: Union[str, Sequence[str]], neurons_as_rows: bool = False,
                 header: Optional[bool] = None) -> Dataset:
    """Loads one CSV as a SingleTrial, or several as a MultiTrial."""
    if isinstance(paths, (str, os.PathLike)):
        return SingleTrial(load_spike_matrix(paths, neurons_as_rows, header))
    trials: List[SingleTrial] = [SingleTrial(load_spike_matrix(p, neurons_as_rows, header))
                                 for p in paths]
    return MultiTrial(tuple(trials))
