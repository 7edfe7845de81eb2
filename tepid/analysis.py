# tepid/analysis.py
# Triplet orchestration for TE partial information decomposition.
# Enumerates (target, source1, source2) triplets, builds the pairwise TE cache
# once, then decomposes every triplet against the frozen cache.

import itertools
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

from tepid.discrete_te import transfer_entropy
from tepid.information import entropy
from tepid.params import PIDParams
from tepid.pid import EntropyRecord, PIDRecord, te_pid
from tepid.preprocessing import MultiTrial, as_dataset, timebin
from tepid.quality_control import (DegenerateNeuron, ValidationError, find_degenerate_neurons,
                                   validate_delay_for_length, validate_triplet_list)
from tepid.writer import RecordCollector, RecordWriter

logger = logging.getLogger(__name__)


# --- 1. Triplet enumeration ---

def generate_triplets(neurons: Iterable[int]) -> np.ndarray:
    """All triplets over `neurons`, each member of every 3-subset once as target.

    Rows are ordered as: every sorted subset (a, b, c), then every (c, a, b),
    then every (b, c, a). N neurons give N(N-1)(N-2)/2 rows.
    """
    combos = np.array(list(itertools.combinations(sorted(int(i) for i in neurons), 3)),
                      dtype=int).reshape(-1, 3)
    return np.vstack([combos, np.roll(combos, 1, axis=1), np.roll(combos, -1, axis=1)])


def count_triplets(n_neurons: int) -> int:
    """Closed-form number of triplets generated for n active neurons."""
    return n_neurons * (n_neurons - 1) * (n_neurons - 2) // 2


def targeted_pairs(triplets: np.ndarray) -> List[Tuple[int, int]]:
    """Distinct (target, source) pairs appearing as (target, source1) or (target, source2)."""
    triplets = np.asarray(triplets, dtype=int).reshape(-1, 3)
    pairs = np.vstack([triplets[:, [0, 1]], triplets[:, [0, 2]]])
    if len(pairs) == 0:
        return []
    return [(int(t), int(s)) for t, s in np.unique(pairs, axis=0)]


# --- 2. Pairwise TE cache ---

class PairwiseTECache(Mapping):
    """Read-only mapping (source, target) -> TE at a fixed delay."""

    def __init__(self, values: Dict[Tuple[int, int], float], delay: int):
        self._values = MappingProxyType(dict(values))
        self.delay = delay

    def __getitem__(self, key: Tuple[int, int]) -> float:
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def te(self, source: int, target: int) -> float:
        return self._values[(source, target)]


def _pair_te(matrix: np.ndarray, target: int, source: int, delay: int) -> float:
    te, _ = transfer_entropy(matrix[:, target], matrix[:, source], delay)
    return te


def build_pairwise_cache(matrix: np.ndarray, pairs: Sequence[Tuple[int, int]], delay: int,
                         n_jobs: int = 1) -> PairwiseTECache:
    """Compute TE once per distinct (target, source) pair and freeze the result."""
    values = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_pair_te)(matrix, t, s, delay) for t, s in pairs)
    cache = PairwiseTECache({(s, t): te for (t, s), te in zip(pairs, values)}, delay)
    logger.debug("Pairwise TE cache built: %d pairs, delay=%d", len(cache), delay)
    return cache


def pairwise_te_matrix(cache: PairwiseTECache, n_neurons: int) -> np.ndarray:
    """Dense matrix W[source, target] of cached TE values (zero where absent)."""
    weights = np.zeros((n_neurons, n_neurons))
    for (source, target), te in cache.items():
        weights[source, target] = te
    return weights


# --- 3. Per-trial plan ---

@dataclass
class TrialPlan:
    """Validated, binned inputs for one trial, ready for computation."""
    trial: Optional[int]
    matrix: np.ndarray
    triplets: np.ndarray
    active: List[int]
    degenerate: List[DegenerateNeuron] = field(default_factory=list)


@dataclass
class TrialSummary:
    trial: Optional[int]
    n_active: int
    n_triplets: int
    n_pairs: int
    degenerate: List[int]


def _is_per_trial(triplets) -> bool:
    return isinstance(triplets, (list, tuple)) and len(triplets) > 0 \
        and all(np.ndim(t) == 2 or np.size(t) == 0 for t in triplets)


def _triplets_per_trial(triplets, n_trials: int) -> List:
    if triplets is None:
        return [None] * n_trials
    if _is_per_trial(triplets):
        if len(triplets) != n_trials:
            raise ValidationError(
                f"Got {len(triplets)} triplet lists for {n_trials} trials; "
                "give one shared list or one list per trial.")
        return list(triplets)
    return [triplets] * n_trials


def plan_trial(matrix: np.ndarray, params: PIDParams, triplets=None,
               trial: Optional[int] = None) -> TrialPlan:
    """Bin, validate and filter one trial. Raises before any output is produced."""
    if params.time_resolution is not None:
        matrix = timebin(matrix, params.time_resolution)
    n_samples, n_neurons = matrix.shape
    validate_delay_for_length(params.delay, n_samples)

    if triplets is None:
        degenerate = find_degenerate_neurons(matrix)
        excluded = {d.neuron for d in degenerate}
        active = [i for i in range(n_neurons) if i not in excluded]
        triplet_array = generate_triplets(active)
    else:
        triplet_array = validate_triplet_list(triplets, n_neurons)
        listed = [int(i) for i in np.unique(triplet_array)]
        degenerate = find_degenerate_neurons(matrix, listed)
        excluded = {d.neuron for d in degenerate}
        if excluded:
            keep = ~np.isin(triplet_array, list(excluded)).any(axis=1)
            triplet_array = triplet_array[keep]
        active = [i for i in listed if i not in excluded]

    return TrialPlan(trial, matrix, triplet_array, active, degenerate)


# --- 4. Orchestration ---

def _triplet_record(matrix: np.ndarray, triplet: np.ndarray, delay: int,
                    cache: PairwiseTECache) -> PIDRecord:
    target, source1, source2 = (int(i) for i in triplet)
    terms = te_pid(matrix[:, target], matrix[:, source1], matrix[:, source2], delay,
                   te1=cache.te(source1, target), te2=cache.te(source2, target))
    return PIDRecord(target, source1, source2, *terms)


class TripletOrchestrator:
    """Drives the TE-PID computation and streams records to a writer."""

    def __init__(self, params: PIDParams, writer: RecordWriter, progress: bool = False):
        self.params = params
        self.writer = writer
        self.progress = progress
        self.caches: Dict[Optional[int], PairwiseTECache] = {}

    def run(self, data) -> List[TrialSummary]:
        """Process a single- or multi-trial dataset.

        Every trial is planned (and so validated) before any record is written.
        """
        dataset = as_dataset(data)
        if isinstance(dataset, MultiTrial):
            per_trial = _triplets_per_trial(self.params.triplets, len(dataset))
            plans = [plan_trial(t.matrix, self.params, tl, trial=i)
                     for i, (t, tl) in enumerate(zip(dataset.trials, per_trial))]
        else:
            triplets = self.params.triplets
            if _is_per_trial(triplets):
                triplets = _triplets_per_trial(triplets, 1)[0]
            plans = [plan_trial(dataset.matrix, self.params, triplets)]
        return [self.execute(plan) for plan in plans]

    def execute(self, plan: TrialPlan) -> TrialSummary:
        delay = self.params.delay
        n_jobs = self.params.n_jobs
        self.writer.begin_trial(plan.trial)
        for diagnostic in plan.degenerate:
            self.writer.diagnostic(diagnostic)

        self.writer.entropy_section([
            EntropyRecord(i, entropy(plan.matrix[delay:, i])) for i in plan.active])

        # Phase (a): the cache is complete and frozen before any triplet is read.
        pairs = targeted_pairs(plan.triplets)
        cache = build_pairwise_cache(plan.matrix, pairs, delay, n_jobs=n_jobs)
        self.caches[plan.trial] = cache

        # Phase (b): triplets are independent; records are emitted in order.
        self.writer.pid_header()
        records = Parallel(n_jobs=n_jobs, prefer="threads", return_as="generator")(
            delayed(_triplet_record)(plan.matrix, triplet, delay, cache) for triplet in plan.triplets)
        label = "Triplets" if plan.trial is None else f"Trial {plan.trial} triplets"
        for record in tqdm(records, total=len(plan.triplets), desc=label, disable=not self.progress):
            self.writer.pid_record(record)

        logger.info("Trial %s: %d active neurons, %d triplets, %d cached pairs",
                    plan.trial, len(plan.active), len(plan.triplets), len(pairs))
        return TrialSummary(plan.trial, len(plan.active), len(plan.triplets), len(pairs),
                            [d.neuron for d in plan.degenerate])


def run_pid_analysis(data, delay: int, triplets=None, time_resolution: Optional[int] = None,
                     n_jobs: int = 1, writer: Optional[RecordWriter] = None) -> RecordWriter:
    """Computes PID for every triplet of `data` and returns the writer.

    Without a writer the records are collected in memory (RecordCollector).
    """
    params = PIDParams(delay=delay, triplets=triplets, time_resolution=time_resolution, n_jobs=n_jobs)
    if writer is None:
        writer = RecordCollector()
    TripletOrchestrator(params, writer).run(data)
    return writer
