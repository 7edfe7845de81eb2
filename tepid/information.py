# tepid/information.py
# Plug-in information measures for discrete (spike-train) variables.
# Probabilities are realized counts divided by the number of observations;
# unobserved symbols carry no entry, so 0*log(0) never has to be evaluated.

import logging
from typing import Dict, Hashable

import numpy as np

from tepid.quality_control import ValidationError, validate_equal_length

logger = logging.getLogger(__name__)


# --- 1. Probability estimation ---

def as_columns(variable) -> np.ndarray:
    """Return a variable as a 2-D array, one row per observation.

    A 1-D series becomes a single column; a 2-D array is a vector-valued
    (joint) variable whose rows are treated as one symbol.
    """
    array = np.asarray(variable)
    if array.ndim == 1:
        return array.reshape(-1, 1)
    if array.ndim != 2:
        raise ValidationError(f"Variables must be 1-D or 2-D, got {array.ndim} dimensions")
    return array


def stack_variables(*variables) -> np.ndarray:
    """Bundle aligned variables column-wise into one joint variable."""
    validate_equal_length(*variables)
    return np.hstack([as_columns(v) for v in variables])


def encode_symbols(*variables) -> np.ndarray:
    """Map each row of the joint variable to an integer code 0..K-1.

    Codes follow the sorted order of the distinct row-tuples.
    """
    rows = stack_variables(*variables)
    _, inverse = np.unique(rows, axis=0, return_inverse=True)
    return inverse.reshape(-1)


def _joint_row_counts(*codes: np.ndarray) -> np.ndarray:
    """For each observation, the number of observations sharing its joint symbol."""
    _, inverse, counts = np.unique(np.column_stack(codes), axis=0,
                                   return_inverse=True, return_counts=True)
    return counts[inverse.reshape(-1)]


def estimate_distribution(*variables) -> Dict[Hashable, float]:
    """Empirical distribution over the realized symbols of the joint variable.

    Keys are scalars for a single one-column variable and tuples otherwise.
    """
    rows = stack_variables(*variables)
    symbols, counts = np.unique(rows, axis=0, return_counts=True)
    probs = counts / rows.shape[0]
    if rows.shape[1] == 1:
        keys = [s[0].item() for s in symbols]
    else:
        keys = [tuple(s.tolist()) for s in symbols]
    return dict(zip(keys, probs.tolist()))


# --- 2. Entropy ---

def entropy_from_distribution(distribution: Dict[Hashable, float]) -> float:
    """H = -sum p log2 p over the realized support."""
    probs = np.fromiter(distribution.values(), dtype=float)
    probs = probs[probs > 0]
    return float(-np.sum(probs * np.log2(probs)))


def entropy(*variables) -> float:
    """Shannon entropy (bits) of the joint variable formed by `variables`."""
    return entropy_from_distribution(estimate_distribution(*variables))


# --- 3. Conditional mutual information ---

def conditional_mutual_information(x, y, z) -> float:
    """I(X;Y|Z) in bits.

    I = sum_{x,y,z} p(x,y,z) log2( p(x,y,z) p(z) / (p(x,z) p(y,z)) )

    summed over the (x,y,z) combinations realized in the data. A term whose
    denominator probability is zero is skipped rather than raising.
    """
    n = validate_equal_length(x, y, z)
    cx, cy, cz = encode_symbols(x), encode_symbols(y), encode_symbols(z)

    _, first, n_xyz = np.unique(np.column_stack((cx, cy, cz)), axis=0,
                                return_index=True, return_counts=True)
    n_z = np.bincount(cz)[cz[first]]
    n_xz = _joint_row_counts(cx, cz)[first]
    n_yz = _joint_row_counts(cy, cz)[first]

    p_xyz = n_xyz / n
    p_z = n_z / n
    p_xz = n_xz / n
    p_yz = n_yz / n

    denominator = p_xz * p_yz
    valid = denominator > 0
    if not np.all(valid):
        logger.debug("CMI: skipping %d zero-probability terms", int(np.sum(~valid)))

    terms = p_xyz[valid] * np.log2(p_xyz[valid] * p_z[valid] / denominator[valid])
    return float(np.sum(terms))


def mutual_information(x, y) -> float:
    """I(X;Y) in bits, as conditional MI given a constant variable."""
    n = validate_equal_length(x, y)
    return conditional_mutual_information(x, y, np.zeros(n, dtype=int))
