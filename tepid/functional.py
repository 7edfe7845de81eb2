"""Functional-triplet filtering from pairwise transfer entropy.

Builds a directed weight matrix W[source, target] that keeps, for every
neuron pair, only the dominant direction of information flow, optionally
thresholds it, and returns the triplets whose two sources both feed the
target. The result can be passed to the PID orchestrator as a triplet list.
"""
import itertools
import logging
from typing import Optional, Tuple

import numpy as np

from tepid.analysis import build_pairwise_cache, generate_triplets
from tepid.params import FunctionalParams
from tepid.quality_control import find_degenerate_neurons, validate_delay_for_length, validate_matrix

logger = logging.getLogger(__name__)


def directed_weights(matrix: np.ndarray, delay: int, n_jobs: int = 1) -> np.ndarray:
    """W[i, j] = TE(i -> j) where that direction dominates, else 0.

    Equal, non-zero TE in both directions keeps both entries; a pair with
    zero TE both ways keeps neither.
    """
    n_neurons = matrix.shape[1]
    pairs = [(t, s) for s, t in itertools.permutations(range(n_neurons), 2)]
    cache = build_pairwise_cache(matrix, pairs, delay, n_jobs=n_jobs)

    weights = np.zeros((n_neurons, n_neurons))
    for i, j in itertools.combinations(range(n_neurons), 2):
        i_to_j = cache.te(i, j)
        j_to_i = cache.te(j, i)
        if i_to_j > j_to_i:
            weights[i, j] = i_to_j
        elif i_to_j < j_to_i:
            weights[j, i] = j_to_i
        elif i_to_j != 0:
            weights[i, j] = i_to_j
            weights[j, i] = j_to_i
    return weights


def apply_threshold(weights: np.ndarray, threshold: float) -> np.ndarray:
    """Discard the bottom `threshold` fraction of non-zero weights.

    The cut value is the floor(threshold * count)-th smallest non-zero weight;
    weights strictly below it are zeroed. When that rank is below one nothing
    is discarded.
    """
    ordered = np.sort(weights[weights != 0].ravel())
    rank = int(np.floor(threshold * ordered.size))
    if rank < 1:
        return weights.copy()
    cut = ordered[rank - 1]
    thresholded = weights.copy()
    thresholded[thresholded < cut] = 0
    return thresholded


def functional_triplets(data, params: FunctionalParams) -> Tuple[np.ndarray, np.ndarray]:
    """Triplets (target, source1, source2) with W[source1, target] > 0 and W[source2, target] > 0.

    Returns:
        (triplets, weight_matrix) where weight_matrix is W after thresholding.
    """
    matrix = validate_matrix(data)
    validate_delay_for_length(params.delay, matrix.shape[0])

    weights = directed_weights(matrix, params.delay, n_jobs=params.n_jobs)
    if params.threshold is not None:
        weights = apply_threshold(weights, params.threshold)

    excluded = {d.neuron for d in find_degenerate_neurons(matrix)}
    active = [i for i in range(matrix.shape[1]) if i not in excluded]
    candidates = generate_triplets(active)

    keep = (weights[candidates[:, 1], candidates[:, 0]] > 0) & \
           (weights[candidates[:, 2], candidates[:, 0]] > 0)
    triplets = candidates[keep]
    logger.info("Functional triplets: %d of %d candidates kept", len(triplets), len(candidates))
    return triplets, weights


def functional_network(data, delay: int, threshold: Optional[float] = None,
                       n_jobs: int = 1) -> Tuple[np.ndarray, np.ndarray]:
    return functional_triplets(data, FunctionalParams(delay=delay, threshold=threshold, n_jobs=n_jobs))
