"""Transfer entropy between discrete (possibly vector-valued) time-series."""
import logging
from typing import Tuple

import numpy as np

from tepid.information import as_columns, conditional_mutual_information, entropy
from tepid.params import TEParams
from tepid.quality_control import (validate_delay, validate_delay_for_length,
                                   validate_equal_length)

logger = logging.getLogger(__name__)


def split_past_future(series: np.ndarray, delay: int) -> Tuple[np.ndarray, np.ndarray]:
    """Split a series into (past, future) at the given delay.

    past = first N-delay observations, future = last N-delay observations.
    """
    series = as_columns(series)
    n = series.shape[0]
    return series[:n - delay], series[delay:]


def transfer_entropy(target: np.ndarray, source: np.ndarray, delay: int) -> Tuple[float, float]:
    """Transfer entropy (bits) from source to target at the given delay.

    TE = I(source_past ; target_future | target_past)

    Returns:
        (TE, TE normalized by H(target_future)). When the future target has
        zero entropy the unnormalized TE is returned in both slots.
    """
    delay = validate_delay(delay)
    n = validate_equal_length(target, source)
    validate_delay_for_length(delay, n)

    target_past, target_future = split_past_future(target, delay)
    source_past, _ = split_past_future(source, delay)

    te = conditional_mutual_information(source_past, target_future, target_past)

    target_entropy = entropy(target_future)
    if target_entropy == 0:
        logger.debug("Target time-series has zero entropy. Using unnormalized transfer entropy.")
        normed_te = te
    else:
        normed_te = te / target_entropy
    return te, normed_te


class DiscreteTE:
    """Transfer entropy calculator bound to a fixed delay."""

    def __init__(self, params: TEParams):
        self.params = params
        logger.debug(f"DiscreteTE initialized: delay={params.delay}")

    def compute(self, source: np.ndarray, dest: np.ndarray) -> Tuple[float, float]:
        """Compute (TE, normalized TE) from source to dest."""
        return transfer_entropy(dest, source, self.params.delay)

    def compute_joint(self, source1: np.ndarray, source2: np.ndarray,
                      dest: np.ndarray) -> Tuple[float, float]:
        """TE from the two sources taken together as one vector-valued source."""
        validate_equal_length(source1, source2, dest)
        joint = np.hstack([as_columns(source1), as_columns(source2)])
        return transfer_entropy(dest, joint, self.params.delay)
