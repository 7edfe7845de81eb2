"""Minimum-information redundancy (Williams & Beer 2010, as used by Timme et al. 2016).

The redundancy two sources share about a target is the expected value, over
realizations t of the future target, of the smaller of the two specific
informations I_spec(t; source_past).
"""
import logging
from typing import Dict, Hashable

import numpy as np

from tepid.discrete_te import split_past_future
from tepid.information import as_columns, encode_symbols
from tepid.quality_control import (validate_delay, validate_delay_for_length,
                                   validate_equal_length)

logger = logging.getLogger(__name__)


def _target_keys(target: np.ndarray, codes: np.ndarray) -> Dict[int, Hashable]:
    """Map target codes back to the symbol (scalar or tuple) they stand for."""
    rows = as_columns(target)
    _, first = np.unique(codes, return_index=True)
    if rows.shape[1] == 1:
        return {int(codes[i]): rows[i, 0].item() for i in first}
    return {int(codes[i]): tuple(rows[i].tolist()) for i in first}


def specific_information_profile(target: np.ndarray, source: np.ndarray) -> Dict[Hashable, float]:
    """Specific information I_spec(t; S) for every realized target value t.

    I_spec(t; S) = sum_s p(s|t) [ log2(1/p(t)) - log2(1/p(t|s)) ]

    The sum runs over realized s with p(s|t) > 0; other terms are skipped.
    """
    n = validate_equal_length(target, source)
    ct = encode_symbols(target)
    cs = encode_symbols(source)

    n_t = np.bincount(ct)
    n_s = np.bincount(cs)
    pairs, n_ts = np.unique(np.column_stack((ct, cs)), axis=0, return_counts=True)
    t_of_pair, s_of_pair = pairs[:, 0], pairs[:, 1]

    p_t = n_t[t_of_pair] / n
    p_s_given_t = n_ts / n_t[t_of_pair]
    p_t_given_s = n_ts / n_s[s_of_pair]

    valid = p_s_given_t > 0
    terms = np.zeros(len(n_ts))
    terms[valid] = p_s_given_t[valid] * (np.log2(1 / p_t[valid]) - np.log2(1 / p_t_given_s[valid]))

    per_target = np.bincount(t_of_pair, weights=terms, minlength=len(n_t))
    keys = _target_keys(target, ct)
    return {keys[t]: float(per_target[t]) for t in range(len(n_t))}


def specific_information(target: np.ndarray, source: np.ndarray, value: Hashable) -> float:
    """Specific information of one target realization about the source.

    Raises:
        KeyError: If `value` is never realized in target.
    """
    return specific_information_profile(target, source)[value]


def minimum_information(target: np.ndarray, source1: np.ndarray, source2: np.ndarray,
                        delay: int) -> float:
    """Redundant transfer entropy of (source1, source2) about target's future.

    Redundancy = sum_t p(t) min( I_spec(t; source1_past), I_spec(t; source2_past) )
    over the realized values t of target_future.
    """
    delay = validate_delay(delay)
    n = validate_equal_length(target, source1, source2)
    validate_delay_for_length(delay, n)

    _, target_future = split_past_future(target, delay)
    source1_past, _ = split_past_future(source1, delay)
    source2_past, _ = split_past_future(source2, delay)

    ispec1 = specific_information_profile(target_future, source1_past)
    ispec2 = specific_information_profile(target_future, source2_past)

    ct = encode_symbols(target_future)
    p_t = np.bincount(ct) / len(ct)
    keys = _target_keys(target_future, ct)

    redundancy = 0.0
    for t, p in enumerate(p_t):
        key = keys[t]
        redundancy += p * min(ispec1[key], ispec2[key])
    return float(redundancy)
