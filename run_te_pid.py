#!/usr/bin/env python
"""TE-PID pipeline with tracking, heartbeat, and monitoring.

Features:
- run_info.yaml (git commit, config, implementation notes)
- te_pid.csv (text stream: diagnostics, entropy and PID sections per trial)
- pid_records.csv / entropy_records.csv / diagnostics.csv (tabular, with trial column)
- status.json (continuous heartbeat with ETA)
- run.log (warnings and errors)
- error_log.csv (trials that failed validation)
"""
import sys, json, logging, subprocess
from pathlib import Path
from datetime import datetime, timedelta

import numpy as np
import pandas as pd
import yaml
from tqdm import tqdm

sys.path.insert(0, str(Path(__file__).resolve().parent))

from tepid import settings
from tepid.analysis import TripletOrchestrator, plan_trial
from tepid.functional import functional_triplets
from tepid.params import FunctionalParams, PIDParams
from tepid.preprocessing import load_spike_matrix, timebin
from tepid.quality_control import QualityAction, TEPIDError, ValidationError
from tepid.run_config import RunConfig
from tepid.writer import RecordCollector, TeeWriter, TextStreamWriter


def setup_logging(out_dir, level=logging.INFO):
    """Configure logging to run.log and console."""
    log_file = out_dir / 'run.log'

    file_formatter = logging.Formatter(settings.LOG_FORMAT)
    console_formatter = logging.Formatter(settings.CONSOLE_LOG_FORMAT)

    file_handler = logging.FileHandler(log_file, mode='w')
    file_handler.setLevel(level)
    file_handler.setFormatter(file_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    return root_logger


logger = logging.getLogger(__name__)

PRESETS = {
    'smoke': 'config/presets/smoke.yaml',
    'default': 'config/presets/default.yaml',
    'functional': 'config/presets/functional.yaml',
}


def load_triplets_file(path) -> np.ndarray:
    """Read a target, source1, source2 CSV (header optional)."""
    try:
        df = pd.read_csv(path, header=None)
        if not pd.api.types.is_numeric_dtype(df.dtypes.iloc[0]):
            df = pd.read_csv(path)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise ValidationError(f"Could not parse triplets file {path}: {e}") from e
    return df.to_numpy()


class TEPIDPipeline:
    """TE-PID pipeline with per-trial tracking and monitoring."""

    def __init__(self, config: RunConfig, out_dir=None):
        self.config = config
        self.out_dir = Path(out_dir) if out_dir else config.output.resolve_out_dir()
        self.out_dir.mkdir(parents=True, exist_ok=True)

        setup_logging(self.out_dir)

        self.collector = RecordCollector()
        self.summaries = []
        self.errors = []
        self.start_time = None
        self.trials_completed = 0
        self.total_trials = 0

    def get_git_info(self):
        """Get git commit hash and status."""
        try:
            commit = subprocess.check_output(['git', 'rev-parse', 'HEAD'], text=True,
                                             stderr=subprocess.DEVNULL).strip()
            status = subprocess.check_output(['git', 'status', '--short'], text=True,
                                             stderr=subprocess.DEVNULL).strip()
            return {
                'commit': commit[:8],
                'dirty': len(status) > 0,
                'status': status if len(status) > 0 else 'clean'
            }
        except (OSError, subprocess.CalledProcessError):
            return {'commit': 'unknown', 'dirty': False, 'status': 'N/A'}

    def write_run_info(self, trial_ids):
        """Write run_info.yaml with environment details."""
        run_info = {
            'timestamp': datetime.now().isoformat(),
            'schema_version': self.config.schema_version,
            'git': self.get_git_info(),
            'trials': [int(t) for t in trial_ids],
            'config': self.config.to_dict(),
            'implementation': {
                'TE': 'plug-in CMI I(source_past; target_future | target_past), bits',
                'redundancy': 'minimum specific information (Williams-Beer, Timme et al. 2016)',
                'zero_probability': 'terms with zero denominator skipped',
                'indices': '0-based'
            }
        }

        with open(self.out_dir / 'run_info.yaml', 'w') as f:
            yaml.dump(run_info, f, default_flow_style=False, sort_keys=False)

        logger.info(f"run_info.yaml written: git={run_info['git']['commit']}")

    def update_heartbeat(self, current_trial=None):
        """Update status.json with progress and ETA."""
        elapsed = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0

        if self.trials_completed > 0:
            avg_time = elapsed / self.trials_completed
            remaining = self.total_trials - self.trials_completed
            eta_time = datetime.now() + timedelta(seconds=avg_time * remaining)
            eta_str = eta_time.strftime('%Y-%m-%d %H:%M:%S')
        else:
            eta_str = 'calculating...'

        status = {
            'status': 'running' if self.trials_completed < self.total_trials else 'completed',
            'timestamp': datetime.now().isoformat(),
            'progress': {
                'done': self.trials_completed,
                'total': self.total_trials,
                'percent': round(100 * self.trials_completed / self.total_trials, 1) if self.total_trials > 0 else 0
            },
            'current_trial': current_trial,
            'elapsed_seconds': int(elapsed),
            'elapsed_formatted': str(timedelta(seconds=int(elapsed))),
            'eta': eta_str,
            'errors_count': len(self.errors)
        }

        with open(self.out_dir / self.config.output.heartbeat_file, 'w') as f:
            json.dump(status, f, indent=2)

    def triplets_for(self, matrix):
        """Explicit triplet list for one trial: from file, functional filter, or None (all)."""
        methods = self.config.methods
        if methods.triplets_file:
            return load_triplets_file(methods.triplets_file)
        if methods.functional.enabled:
            params = FunctionalParams(delay=methods.delay, threshold=methods.functional.threshold,
                                      n_jobs=self.config.compute.n_jobs)
            triplets, _ = functional_triplets(matrix, params)
            return triplets
        return None

    def process_trial(self, trial_id, orchestrator):
        """Load, validate and decompose a single trial."""
        path = self.config.data.paths[trial_id]
        try:
            start_time = datetime.now()
            matrix = load_spike_matrix(path, neurons_as_rows=self.config.data.neurons_as_rows,
                                       header=self.config.data.header)
            logger.info(f"LOADED trial {trial_id} ({path}): {matrix.shape[0]} samples, {matrix.shape[1]} neurons")

            # Bin first so functional filtering and PID see the same series.
            if self.config.methods.time_resolution:
                matrix = timebin(matrix, self.config.methods.time_resolution)

            plan = plan_trial(matrix, orchestrator.params, self.triplets_for(matrix), trial=trial_id)
            summary = orchestrator.execute(plan)
            self.summaries.append(summary)

            elapsed = (datetime.now() - start_time).total_seconds()
            logger.info(f"COMPLETED trial {trial_id}: {summary.n_triplets} triplets, "
                        f"{summary.n_pairs} pairs (elapsed: {elapsed:.1f}s)")
        except (TEPIDError, FileNotFoundError) as e:
            action = self.config.compute.on_error
            if action == QualityAction.ERROR:
                raise
            self.errors.append({'trial': trial_id, 'path': path, 'error': str(e)[:200]})
            if action == QualityAction.WARN:
                logger.warning(f"SKIPPING trial {trial_id}: {e}")

    def run(self, trial_ids):
        """Run pipeline for the given trial indices."""
        self.start_time = datetime.now()
        self.total_trials = len(trial_ids)
        self.write_run_info(trial_ids)

        methods = self.config.methods
        params = PIDParams(delay=methods.delay, n_jobs=self.config.compute.n_jobs)
        stream = TextStreamWriter(self.out_dir / settings.STREAM_FILE)
        with TeeWriter(stream, self.collector) as writer:
            orchestrator = TripletOrchestrator(params, writer)
            for trial_id in tqdm(trial_ids, desc='Trials'):
                self.process_trial(trial_id, orchestrator)
                self.trials_completed += 1
                self.update_heartbeat(current_trial=trial_id)

        return self.finalize()

    def finalize(self):
        """Save tabular outputs, error log, and final run info."""
        self.collector.save(self.out_dir)

        if self.errors:
            pd.DataFrame(self.errors).to_csv(self.out_dir / 'error_log.csv', index=False)

        self.update_heartbeat()

        with open(self.out_dir / 'run_info.yaml') as f:
            run_info = yaml.safe_load(f)
        run_info['completed_at'] = datetime.now().isoformat()
        run_info['duration_seconds'] = int((datetime.now() - self.start_time).total_seconds())
        run_info['trials_processed'] = len(self.summaries)
        run_info['triplets_processed'] = int(sum(s.n_triplets for s in self.summaries))
        run_info['degenerate_neurons'] = {int(s.trial): s.degenerate for s in self.summaries if s.degenerate}
        run_info['errors_count'] = len(self.errors)

        with open(self.out_dir / 'run_info.yaml', 'w') as f:
            yaml.dump(run_info, f, default_flow_style=False, sort_keys=False)

        logger.warning(f"Pipeline completed: {run_info['trials_processed']} trials, {len(self.errors)} errors")

        return str(self.out_dir.resolve())


def parse_shard(shard, trial_ids):
    """Take every TOTAL-th trial starting from ID."""
    shard_id, total_shards = map(int, shard.split('/'))
    if shard_id < 0 or shard_id >= total_shards:
        raise ValueError(f"Invalid shard_id={shard_id}, must be 0 <= shard_id < {total_shards}")
    return trial_ids[shard_id::total_shards]


def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(
        description="Transfer-entropy partial information decomposition over neuron triplets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Preset configurations:
  smoke       Fast validation on the bundled example data
  default     All triplets, delay 1
  functional  Triplets restricted to the functional network

Examples:
  python run_te_pid.py smoke
  python run_te_pid.py default --shard 0/4
  python run_te_pid.py --config custom.yaml --out-dir results/run1
        """
    )
    parser.add_argument('preset', nargs='?', help=f"Preset name ({', '.join(PRESETS)})")
    parser.add_argument('--config', help="Custom config file (overrides preset)")
    parser.add_argument('--out-dir', help="Output directory (overrides config)")
    parser.add_argument('--shard', type=str, metavar='ID/TOTAL', help="Process shard: e.g., 0/4 means shard 0 of 4")
    args = parser.parse_args(argv)

    # Preset data paths are relative to the repository; custom ones to their config file.
    base_dir = None
    if args.config:
        config_path = args.config
    elif args.preset:
        if args.preset not in PRESETS:
            parser.error(f"Unknown preset '{args.preset}'. Available: {list(PRESETS)}")
        config_path = str(Path(__file__).resolve().parent / PRESETS[args.preset])
        base_dir = Path(__file__).resolve().parent
    else:
        parser.print_help()
        return 1

    config = RunConfig.from_yaml(config_path, base_dir=base_dir)
    pipeline = TEPIDPipeline(config, out_dir=args.out_dir)
    logger.info(f"CONFIG: {config_path}")

    trial_ids = list(range(len(config.data.paths)))
    if args.shard:
        try:
            original_count = len(trial_ids)
            trial_ids = parse_shard(args.shard, trial_ids)
            logger.warning(f"SHARD MODE: Processing shard {args.shard} ({len(trial_ids)}/{original_count} trials)")
        except ValueError as e:
            logger.error(f"Failed to parse --shard argument '{args.shard}': {e}")
            logger.error("Expected format: --shard ID/TOTAL (e.g., --shard 0/4)")
            return 1

    out_dir = pipeline.run(trial_ids)

    print(json.dumps({
        'status': 'completed',
        'OUT_DIR': out_dir,
        'config': config_path,
        'preset': args.preset if args.preset else 'custom',
        'trials': len(trial_ids),
        'next_step': f'python tools/validate_outputs.py --dir {out_dir}'
    }, separators=(',', ':')))
    return 0


if __name__ == "__main__":
    sys.exit(main())
