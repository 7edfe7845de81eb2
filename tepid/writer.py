# tepid/writer.py
# Record sinks consuming the orchestrator's output stream.
# The orchestrator only ever calls the methods of RecordWriter; where the
# records end up (text file, DataFrames, nowhere) is decided here.

import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from tepid import settings
from tepid.pid import EntropyRecord, PIDRecord
from tepid.quality_control import DegenerateNeuron

logger = logging.getLogger(__name__)

PID_COLUMNS = ['trial', 'target', 'source1', 'source2', 'synergy', 'redundancy', 'unique1', 'unique2']
ENTROPY_COLUMNS = ['trial', 'target', 'entropy']
DIAGNOSTIC_COLUMNS = ['trial', 'neuron', 'message']


class RecordWriter:
    """Sink interface. Sections arrive in order: diagnostics, entropy, PID."""

    trial: Optional[int] = None

    def begin_trial(self, trial: Optional[int]) -> None:
        self.trial = trial

    def diagnostic(self, diagnostic: DegenerateNeuron) -> None:
        raise NotImplementedError

    def entropy_section(self, records: List[EntropyRecord]) -> None:
        raise NotImplementedError

    def pid_header(self) -> None:
        pass

    def pid_record(self, record: PIDRecord) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class RecordCollector(RecordWriter):
    """Keeps every record in memory; exposes them as DataFrames."""

    def __init__(self):
        self.diagnostics: List[tuple] = []
        self.entropies: List[tuple] = []
        self.pids: List[tuple] = []

    def diagnostic(self, diagnostic: DegenerateNeuron) -> None:
        self.diagnostics.append((self.trial, diagnostic.neuron, diagnostic.message))

    def entropy_section(self, records: List[EntropyRecord]) -> None:
        self.entropies.extend((self.trial, r.target, r.entropy) for r in records)

    def pid_record(self, record: PIDRecord) -> None:
        self.pids.append((self.trial, *record.as_tuple()))

    @property
    def pid_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.pids, columns=PID_COLUMNS)

    @property
    def entropy_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.entropies, columns=ENTROPY_COLUMNS)

    @property
    def diagnostic_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.diagnostics, columns=DIAGNOSTIC_COLUMNS)

    def save(self, out_dir: Path) -> None:
        """Write the three tables as CSV into out_dir, appending to existing files."""
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        for frame, name in ((self.pid_frame, settings.PID_RECORDS_FILE),
                            (self.entropy_frame, settings.ENTROPY_RECORDS_FILE),
                            (self.diagnostic_frame, settings.DIAGNOSTICS_FILE)):
            fpath = out_dir / name
            if fpath.exists():
                frame.to_csv(fpath, mode='a', header=False, index=False)
            else:
                frame.to_csv(fpath, index=False)
            logger.info("Saved %d rows to %s", len(frame), fpath)


class TextStreamWriter(RecordWriter):
    """Writes the historical single-file text stream.

    Layout per trial: diagnostic lines, 'Target, Entropy' section, then the
    PID section. The file is opened in append mode so multi-trial runs and
    repeated calls accumulate in one file.
    """

    def __init__(self, path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open(self.path, 'a')

    def diagnostic(self, diagnostic: DegenerateNeuron) -> None:
        self._handle.write(diagnostic.message + '\n')

    def entropy_section(self, records: List[EntropyRecord]) -> None:
        fmt = f"%d, {settings.FLOAT_FORMAT}\n"
        self._handle.write(settings.ENTROPY_HEADER + '\n')
        for r in records:
            self._handle.write(fmt % (r.target, r.entropy))

    def pid_header(self) -> None:
        self._handle.write(settings.PID_HEADER + '\n')

    def pid_record(self, record: PIDRecord) -> None:
        fmt = "%d, %d, %d, " + ", ".join([settings.FLOAT_FORMAT] * 4) + "\n"
        self._handle.write(fmt % record.as_tuple())

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()


class TeeWriter(RecordWriter):
    """Forwards every call to several writers."""

    def __init__(self, *writers: RecordWriter):
        self.writers = writers

    def begin_trial(self, trial: Optional[int]) -> None:
        for w in self.writers:
            w.begin_trial(trial)

    def diagnostic(self, diagnostic: DegenerateNeuron) -> None:
        for w in self.writers:
            w.diagnostic(diagnostic)

    def entropy_section(self, records: List[EntropyRecord]) -> None:
        for w in self.writers:
            w.entropy_section(records)

    def pid_header(self) -> None:
        for w in self.writers:
            w.pid_header()

    def pid_record(self, record: PIDRecord) -> None:
        for w in self.writers:
            w.pid_record(record)

    def close(self) -> None:
        for w in self.writers:
            w.close()
