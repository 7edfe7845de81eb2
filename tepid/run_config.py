"""Run configuration for the TE-PID pipeline.

Decoupled configuration loaded from YAML presets:
- Spike-train CSVs, one per trial, optionally neurons-as-rows
- Time-delay and optional time resolution for binning
- Optional explicit triplet list, or functional-triplet filtering
- Parallel workers for the cache and triplet phases
- Output directory with <STAMP> placeholder
"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from tepid import settings
from tepid.quality_control import (ConfigurationError, QualityAction, validate_delay,
                                   validate_n_jobs, validate_threshold, validate_time_resolution)


@dataclass
class DataConfig:
    """Input data configuration."""
    paths: List[str] = field(default_factory=list)
    neurons_as_rows: bool = False
    header: Optional[bool] = None  # None: detect a non-numeric label row

    def __post_init__(self):
        if isinstance(self.paths, str):
            self.paths = [self.paths]
        if not self.paths:
            raise ConfigurationError("data.paths must list at least one spike-matrix CSV.")


@dataclass
class FunctionalConfig:
    """Functional-triplet filtering configuration."""
    enabled: bool = False
    threshold: Optional[float] = None

    def __post_init__(self):
        if self.threshold is not None:
            self.threshold = validate_threshold(self.threshold)


@dataclass
class MethodConfig:
    """Information-theoretic method configuration."""
    delay: int = settings.DEFAULT_DELAY
    time_resolution: Optional[int] = None
    triplets_file: Optional[str] = None  # CSV with target, source1, source2 columns
    functional: FunctionalConfig = None

    def __post_init__(self):
        self.delay = validate_delay(self.delay)
        self.time_resolution = validate_time_resolution(self.time_resolution)
        if self.functional is None:
            self.functional = FunctionalConfig()
        elif isinstance(self.functional, dict):
            self.functional = FunctionalConfig(**self.functional)
        if self.triplets_file and self.functional.enabled:
            raise ConfigurationError("methods.triplets_file and methods.functional are mutually exclusive.")


@dataclass
class ComputeConfig:
    """Computational resource configuration."""
    n_jobs: int = settings.DEFAULT_N_JOBS
    on_error: QualityAction = QualityAction.WARN

    def __post_init__(self):
        self.n_jobs = validate_n_jobs(self.n_jobs)
        if not isinstance(self.on_error, QualityAction):
            try:
                self.on_error = QualityAction(self.on_error)
            except ValueError:
                raise ConfigurationError(
                    f"compute.on_error must be one of {[a.value for a in QualityAction]}, "
                    f"got {self.on_error!r}")


@dataclass
class OutputConfig:
    """Output and artifact configuration."""
    out_dir: str = 'results/te_pid_<STAMP>'
    heartbeat_file: str = 'status.json'

    def resolve_out_dir(self) -> Path:
        ts = datetime.now().strftime('%Y%m%d_%H%M')
        return Path(self.out_dir.replace('<STAMP>', ts))


@dataclass
class RunConfig:
    """Complete run configuration."""
    data: DataConfig
    methods: MethodConfig = None
    compute: ComputeConfig = None
    output: OutputConfig = None
    schema_version: str = 'v1.0'

    def __post_init__(self):
        if self.methods is None:
            self.methods = MethodConfig()
        if self.compute is None:
            self.compute = ComputeConfig()
        if self.output is None:
            self.output = OutputConfig()

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'RunConfig':
        if not isinstance(raw, dict):
            raise ConfigurationError("Run configuration must be a mapping.")
        missing = [k for k in ('data', 'methods') if k not in raw]
        if missing:
            raise ConfigurationError(f"Missing required config fields: {missing}")
        try:
            return cls(
                data=DataConfig(**raw['data']),
                methods=MethodConfig(**raw['methods']),
                compute=ComputeConfig(**raw.get('compute', {})),
                output=OutputConfig(**raw.get('output', {})),
                schema_version=raw.get('schema_version', 'v1.0'),
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown or malformed config field: {e}")

    @classmethod
    def from_yaml(cls, config_path, base_dir=None) -> 'RunConfig':
        """Load a YAML config; relative input paths resolve against base_dir.

        base_dir defaults to the directory holding the config file.
        """
        with open(config_path) as f:
            config = cls.from_dict(yaml.safe_load(f))
        config.resolve_inputs(base_dir if base_dir is not None else Path(config_path).resolve().parent)
        return config

    def resolve_inputs(self, base_dir) -> None:
        """Anchor relative trial paths and the triplets file at base_dir."""
        base_dir = Path(base_dir)

        def anchor(path):
            path = Path(path).expanduser()
            return str(path if path.is_absolute() else base_dir / path)

        self.data.paths = [anchor(p) for p in self.data.paths]
        if self.methods.triplets_file:
            self.methods.triplets_file = anchor(self.methods.triplets_file)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            'schema_version': self.schema_version,
            'data': {
                'paths': list(self.data.paths),
                'neurons_as_rows': self.data.neurons_as_rows,
                'header': self.data.header
            },
            'methods': {
                'delay': self.methods.delay,
                'time_resolution': self.methods.time_resolution,
                'triplets_file': self.methods.triplets_file,
                'functional': {
                    'enabled': self.methods.functional.enabled,
                    'threshold': self.methods.functional.threshold
                }
            },
            'compute': {
                'n_jobs': self.compute.n_jobs,
                'on_error': self.compute.on_error.value
            },
            'output': {
                'out_dir': self.output.out_dir,
                'heartbeat_file': self.output.heartbeat_file
            }
        }
