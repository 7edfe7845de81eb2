"""Partial information decomposition of transfer entropy into four terms."""
from dataclasses import dataclass, astuple
from typing import Optional, Tuple

import numpy as np

from tepid.discrete_te import DiscreteTE
from tepid.params import TEParams
from tepid.redundancy import minimum_information


@dataclass(frozen=True)
class EntropyRecord:
    """Entropy (bits) of a neuron's delay-truncated future series."""
    target: int
    entropy: float


@dataclass(frozen=True)
class PIDRecord:
    """PID terms (bits) for one (target, source1, source2) triplet.

    synergy + redundancy + unique1 + unique2 equals TE(joint sources -> target)
    by construction.
    """
    target: int
    source1: int
    source2: int
    synergy: float
    redundancy: float
    unique1: float
    unique2: float

    def as_tuple(self) -> Tuple:
        return astuple(self)

    @property
    def joint_te(self) -> float:
        return self.synergy + self.redundancy + self.unique1 + self.unique2


def decompose(te1: float, te2: float, te12: float, redundancy: float) -> Tuple[float, float, float, float]:
    """Split joint TE into (synergy, redundancy, unique1, unique2).

    No clamping is applied: near a true zero the terms may carry floating noise
    of either sign.
    """
    unique1 = te1 - redundancy
    unique2 = te2 - redundancy
    synergy = te12 - redundancy - unique1 - unique2
    return synergy, redundancy, unique1, unique2


def te_pid(target: np.ndarray, source1: np.ndarray, source2: np.ndarray, delay: int,
           te1: Optional[float] = None, te2: Optional[float] = None) -> Tuple[float, float, float, float]:
    """PID of the transfer entropy from (source1, source2) to target.

    te1/te2 may be supplied from a pairwise cache; they are computed otherwise.
    """
    calc = DiscreteTE(TEParams(delay=delay))
    if te1 is None:
        te1, _ = calc.compute(source1, target)
    if te2 is None:
        te2, _ = calc.compute(source2, target)
    te12, _ = calc.compute_joint(source1, source2, target)
    redundancy = minimum_information(target, source1, source2, delay)
    return decompose(te1, te2, te12, redundancy)
