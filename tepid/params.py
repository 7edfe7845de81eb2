"""Parameter dataclasses for TE-PID analysis."""
from dataclasses import dataclass
from typing import Optional

from tepid import settings
from tepid.quality_control import (validate_delay, validate_n_jobs,
                                   validate_threshold, validate_time_resolution)


@dataclass
class TEParams:
    """Transfer Entropy parameters."""
    delay: int = settings.DEFAULT_DELAY

    def __post_init__(self):
        self.delay = validate_delay(self.delay)


@dataclass
class PIDParams:
    """Triplet PID parameters.

    triplets is either None (all triplets), one (n, 3) array shared by every
    trial, or a list with one (n, 3) array per trial.
    """
    delay: int = settings.DEFAULT_DELAY
    triplets: Optional[object] = None
    time_resolution: Optional[int] = None
    n_jobs: int = settings.DEFAULT_N_JOBS

    def __post_init__(self):
        self.delay = validate_delay(self.delay)
        self.time_resolution = validate_time_resolution(self.time_resolution)
        self.n_jobs = validate_n_jobs(self.n_jobs)


@dataclass
class FunctionalParams:
    """Functional-triplet filtering parameters."""
    delay: int = settings.DEFAULT_DELAY
    threshold: Optional[float] = None
    n_jobs: int = settings.DEFAULT_N_JOBS

    def __post_init__(self):
        self.delay = validate_delay(self.delay)
        if self.threshold is not None:
            self.threshold = validate_threshold(self.threshold)
        self.n_jobs = validate_n_jobs(self.n_jobs)
