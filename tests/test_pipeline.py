"""End-to-end tests for run configuration, the batch runner, shard merging and output validation."""
import json
import numpy as np
import pandas as pd
import pytest
import sys
import yaml
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / 'tools'))

import merge_shard_results
import run_te_pid
import validate_outputs
from tepid import settings
from tepid.analysis import run_pid_analysis
from tepid.quality_control import ConfigurationError, QualityAction

EXAMPLE_TRIALS = [str(ROOT / 'data' / 'example' / 'trial_01.csv'),
                  str(ROOT / 'data' / 'example' / 'trial_02.csv')]


def _config(tmp_path, **methods):
    raw = {
        'schema_version': 'v1.0',
        'data': {'paths': EXAMPLE_TRIALS},
        'methods': {'delay': 1, **methods},
        'compute': {'n_jobs': 1, 'on_error': 'warn'},
        'output': {'out_dir': str(tmp_path / 'out')},
    }
    path = tmp_path / 'config.yaml'
    with open(path, 'w') as f:
        yaml.dump(raw, f)
    return raw, path


# --- Configuration ---

def test_config_round_trip(tmp_path):
    raw, path = _config(tmp_path, time_resolution=2)
    config = run_te_pid.RunConfig.from_yaml(path)
    assert config.methods.time_resolution == 2
    assert config.compute.on_error is QualityAction.WARN
    assert run_te_pid.RunConfig.from_dict(config.to_dict()).to_dict() == config.to_dict()


@pytest.mark.parametrize("mutate, message", [
    (lambda r: r.pop('methods'), "Missing required"),
    (lambda r: r['methods'].update(delay=0), "time-delay"),
    (lambda r: r['methods'].update(bogus=1), "malformed"),
    (lambda r: r['compute'].update(on_error='explode'), "on_error"),
    (lambda r: r['methods'].update(triplets_file='t.csv', functional={'enabled': True}),
     "mutually exclusive"),
    (lambda r: r['data'].update(paths=[]), "at least one"),
])
def test_config_errors(tmp_path, mutate, message):
    raw, _ = _config(tmp_path)
    mutate(raw)
    with pytest.raises(ConfigurationError, match=message):
        run_te_pid.RunConfig.from_dict(raw)


def test_out_dir_stamp_placeholder():
    config = run_te_pid.RunConfig.from_dict({'data': {'paths': ['a.csv']}, 'methods': {},
                                             'output': {'out_dir': 'results/run_<STAMP>'}})
    assert '<STAMP>' not in str(config.output.resolve_out_dir())


def test_parse_shard():
    assert run_te_pid.parse_shard('1/2', [0, 1, 2, 3]) == [1, 3]
    with pytest.raises(ValueError):
        run_te_pid.parse_shard('2/2', [0, 1, 2, 3])


# --- Runner ---

def test_cli_run_writes_all_outputs(tmp_path):
    _, config_path = _config(tmp_path)
    out_dir = tmp_path / 'out'
    assert run_te_pid.main(['--config', str(config_path)]) == 0

    for name in (settings.STREAM_FILE, settings.PID_RECORDS_FILE, settings.ENTROPY_RECORDS_FILE,
                 settings.DIAGNOSTICS_FILE, 'run_info.yaml', 'status.json', 'run.log'):
        assert (out_dir / name).exists(), f"{name} missing"

    # Neuron 4 of the example data is silent: 4 active neurons, 12 triplets per trial
    pids = pd.read_csv(out_dir / settings.PID_RECORDS_FILE)
    assert pids['trial'].tolist() == [0] * 12 + [1] * 12
    assert 4 not in pids[['target', 'source1', 'source2']].values
    identity = pids['synergy'] + pids['redundancy'] + pids['unique1'] + pids['unique2']
    assert np.isfinite(identity).all()

    diagnostics = pd.read_csv(out_dir / settings.DIAGNOSTICS_FILE)
    assert diagnostics['neuron'].tolist() == [4, 4]
    assert (out_dir / settings.STREAM_FILE).read_text().count("Neuron 4 has zero entropy") == 2

    with open(out_dir / 'status.json') as f:
        status = json.load(f)
    assert status['status'] == 'completed' and status['progress']['done'] == 2
    with open(out_dir / 'run_info.yaml') as f:
        run_info = yaml.safe_load(f)
    assert run_info['triplets_processed'] == 24
    assert run_info['degenerate_neurons'] == {0: [4], 1: [4]}


def test_cli_copy_relation_shows_up_as_unique_information(tmp_path):
    """Neuron 2 of the example data copies neuron 0 one step later."""
    triplets = tmp_path / 'triplets.csv'
    triplets.write_text("target,source1,source2\n2,0,1\n")
    _, config_path = _config(tmp_path, triplets_file=str(triplets))
    assert run_te_pid.main(['--config', str(config_path)]) == 0

    pids = pd.read_csv(tmp_path / 'out' / settings.PID_RECORDS_FILE)
    assert len(pids) == 2
    assert (pids['unique1'] > 0.5).all()
    assert (pids['unique1'] > pids['unique2']).all()


def test_cli_functional_mode(tmp_path):
    _, config_path = _config(tmp_path, functional={'enabled': True, 'threshold': 0.5})
    assert run_te_pid.main(['--config', str(config_path)]) == 0
    pids = pd.read_csv(tmp_path / 'out' / settings.PID_RECORDS_FILE)
    assert len(pids) < 24


def test_failed_trial_is_logged_and_skipped(tmp_path):
    raw, _ = _config(tmp_path)
    raw['data']['paths'] = [EXAMPLE_TRIALS[0], str(tmp_path / 'missing.csv')]
    pipeline = run_te_pid.TEPIDPipeline(run_te_pid.RunConfig.from_dict(raw), out_dir=tmp_path / 'out')
    pipeline.run([0, 1])

    errors = pd.read_csv(tmp_path / 'out' / 'error_log.csv')
    assert errors['trial'].tolist() == [1]
    pids = pd.read_csv(tmp_path / 'out' / settings.PID_RECORDS_FILE)
    assert set(pids['trial']) == {0}


def test_failed_trial_raises_when_configured(tmp_path):
    raw, _ = _config(tmp_path)
    raw['data']['paths'] = [str(tmp_path / 'missing.csv')]
    raw['compute']['on_error'] = 'error'
    pipeline = run_te_pid.TEPIDPipeline(run_te_pid.RunConfig.from_dict(raw), out_dir=tmp_path / 'out')
    with pytest.raises(FileNotFoundError):
        pipeline.run([0])


@pytest.mark.parametrize("content", ["", "n0,n1,n2\n", "n0,n1,n2\n0,1,x\n1,0,y\n", '0,1,"2\n'])
def test_unreadable_trial_is_skipped_and_batch_continues(tmp_path, content):
    """An empty, header-only, non-numeric or unparsable CSV fails only its own trial."""
    bad = tmp_path / 'bad.csv'
    bad.write_text(content)
    raw, _ = _config(tmp_path)
    raw['data']['paths'] = [str(bad), EXAMPLE_TRIALS[0]]
    raw['compute']['on_error'] = 'skip'
    config_path = tmp_path / 'config.yaml'
    with open(config_path, 'w') as f:
        yaml.dump(raw, f)

    assert run_te_pid.main(['--config', str(config_path)]) == 0

    out_dir = tmp_path / 'out'
    errors = pd.read_csv(out_dir / 'error_log.csv')
    assert errors['trial'].tolist() == [0]
    pids = pd.read_csv(out_dir / settings.PID_RECORDS_FILE)
    assert pids['trial'].tolist() == [1] * 12
    with open(out_dir / 'status.json') as f:
        status = json.load(f)
    assert status['status'] == 'completed' and status['errors_count'] == 1


def test_relative_paths_resolve_against_config_directory(tmp_path, monkeypatch):
    config_dir = tmp_path / 'study'
    (config_dir / 'spikes').mkdir(parents=True)
    (config_dir / 'spikes' / 'trial.csv').write_text(Path(EXAMPLE_TRIALS[0]).read_text())
    (config_dir / 'triplets.csv').write_text("2,0,1\n")
    raw = {'data': {'paths': ['spikes/trial.csv']},
           'methods': {'delay': 1, 'triplets_file': 'triplets.csv'},
           'output': {'out_dir': str(tmp_path / 'out')}}
    with open(config_dir / 'config.yaml', 'w') as f:
        yaml.dump(raw, f)

    elsewhere = tmp_path / 'elsewhere'
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)
    config = run_te_pid.RunConfig.from_yaml(config_dir / 'config.yaml')
    assert [Path(p) for p in config.data.paths] == [(config_dir / 'spikes' / 'trial.csv').resolve()]
    assert Path(config.methods.triplets_file) == (config_dir / 'triplets.csv').resolve()

    assert run_te_pid.main(['--config', str(config_dir / 'config.yaml')]) == 0
    assert len(pd.read_csv(tmp_path / 'out' / settings.PID_RECORDS_FILE)) == 1


def test_preset_runs_from_another_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / 'smoke'
    assert run_te_pid.main(['smoke', '--out-dir', str(out_dir)]) == 0
    assert not (out_dir / 'error_log.csv').exists()
    pids = pd.read_csv(out_dir / settings.PID_RECORDS_FILE)
    assert pids['trial'].tolist() == [0] * 12 + [1] * 12


# --- Sharding and validation ---

def test_shards_merge_back_in_trial_order(tmp_path):
    _, config_path = _config(tmp_path)
    shard_dirs = []
    for shard in ('1/2', '0/2'):
        shard_dir = tmp_path / f"shard_{shard[0]}"
        assert run_te_pid.main(['--config', str(config_path), '--out-dir', str(shard_dir),
                                '--shard', shard]) == 0
        shard_dirs.append(str(shard_dir))

    merged = tmp_path / 'merged'
    merge_shard_results.main(['--shards', *shard_dirs, '--output', str(merged)])

    pids = pd.read_csv(merged / settings.PID_RECORDS_FILE)
    assert pids['trial'].tolist() == [0] * 12 + [1] * 12
    with open(merged / 'status.json') as f:
        assert json.load(f)['progress']['done'] == 2
    assert (merged / settings.STREAM_FILE).read_text().count(settings.PID_HEADER) == 2


def _write_records(out_dir, unique1=(0.0, 1e-17), source2=(2, 0)):
    pd.DataFrame({'trial': [0, 0], 'target': [0, 1], 'source1': [1, 2], 'source2': list(source2),
                  'synergy': [0.1, 0.0], 'redundancy': [0.2, 0.0],
                  'unique1': list(unique1), 'unique2': [0.3, -1e-17]}
                 ).to_csv(out_dir / settings.PID_RECORDS_FILE, index=False)
    pd.DataFrame({'trial': [0, 0], 'target': [0, 1], 'entropy': [1.0, 0.5]}
                 ).to_csv(out_dir / settings.ENTROPY_RECORDS_FILE, index=False)


def test_validator_accepts_good_and_flags_bad_outputs(tmp_path):
    _write_records(tmp_path)
    assert validate_outputs.main(['--dir', str(tmp_path)]) == 0

    _write_records(tmp_path, source2=(2, 1))
    ok, errors, _ = validate_outputs.validate_file(tmp_path / settings.PID_RECORDS_FILE,
                                                   validate_outputs.SCHEMAS[settings.PID_RECORDS_FILE])
    assert not ok
    assert any('repeat a neuron' in e for e in errors)
    assert validate_outputs.main(['--dir', str(tmp_path)]) == 1


def test_validator_reports_negative_unique_terms_as_warnings(tmp_path, capsys):
    """A target whose past predicts its future gives unique < 0 legitimately."""
    np.random.seed(42)
    N = 20000
    target = np.zeros(N, dtype=int)
    flips = np.random.rand(N) < 0.1
    for t in range(1, N):
        target[t] = target[t - 1] ^ int(flips[t])
    matrix = np.column_stack([target, target, np.random.randint(0, 2, N)])
    records = run_pid_analysis(matrix, delay=1, triplets=[[0, 1, 2]]).pid_frame
    assert records['unique1'][0] < -settings.NUMERIC_TOLERANCE, "copy of an autocorrelated target"

    _write_records(tmp_path, unique1=(float(records['unique1'][0]), 0.0))
    ok, errors, warnings = validate_outputs.validate_file(
        tmp_path / settings.PID_RECORDS_FILE, validate_outputs.SCHEMAS[settings.PID_RECORDS_FILE])
    assert ok and errors == []
    assert any('unique1' in w for w in warnings)
    assert validate_outputs.main(['--dir', str(tmp_path)]) == 0
    assert "! Column unique1" in capsys.readouterr().out
