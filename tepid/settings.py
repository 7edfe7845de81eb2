# tepid/settings.py
# This file contains global constants for the project.

# --- ANALYSIS PARAMETERS ---

# Default time-delay (in bins) between past and future observations.
DEFAULT_DELAY = 1

# Tolerance used when checking the PID identity and the redundancy bound.
# Floating noise around a true zero is of order 1e-16, this leaves headroom.
NUMERIC_TOLERANCE = 1e-9

# Parallel workers for cache building and the triplet pass (1 = serial).
DEFAULT_N_JOBS = 1

# --- OUTPUT ---

# Text stream mirroring the historical single-file output.
STREAM_FILE = "te_pid.csv"

# Tabular outputs (one row per record, with a trial column).
PID_RECORDS_FILE = "pid_records.csv"
ENTROPY_RECORDS_FILE = "entropy_records.csv"
DIAGNOSTICS_FILE = "diagnostics.csv"

# Number format used in the text stream.
FLOAT_FORMAT = "%.6g"

ENTROPY_HEADER = "Target, Entropy"
PID_HEADER = "Target, Source1, Source2, Synergy, Redundancy, Unique1, Unique2"

# --- LOGGING ---

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
CONSOLE_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
