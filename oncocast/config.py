"""
config.py
---------
Shared constants for the OncoCast resampling pipeline, plus the logging setup
used by the analysis scripts.

Fixed heuristics
────────────────
  ENET_L2_SCALE      : the optimal ridge strength is divided by 8 before it is
                       used as the fixed L2 term of the elastic-net L1 search
  BOOT_TEST_WEIGHT   : .632 bootstrap blend of out-of-bag and in-sample
  BOOT_TRAIN_WEIGHT    concordance
"""

import logging
import sys
from pathlib import Path

import numpy as np

# ──────────────────────────────────────────────────────────────────────────────
# Resampling
# ──────────────────────────────────────────────────────────────────────────────
SAMPLING_MODES       = ("cv", "boot")
TEST_FRACTION        = 1 / 3
MIN_RECOMMENDED_RUNS = 50
DEFAULT_RUNS         = 100

# ──────────────────────────────────────────────────────────────────────────────
# Penalized solver
# ──────────────────────────────────────────────────────────────────────────────
N_FOLDS          = 5        # internal CV for the penalty strength
N_ALPHAS         = 50       # length of the Coxnet alpha path
ALPHA_MIN_RATIO  = 0.01
RIDGE_L1_RATIO   = 0.01     # near-pure Ridge (l1_ratio must be > 0 for sksurv)
COXNET_MAX_ITER  = 100_000
ENET_L2_SCALE    = 1 / 8

# lifelines back-end (left-truncated data): fixed grid, strongest first
LT_ALPHA_GRID    = np.logspace(0, -2.5, 15)
ZERO_TOL         = 1e-4     # lifelines' smoothed L1 never hits exact zero

# ──────────────────────────────────────────────────────────────────────────────
# Scoring
# ──────────────────────────────────────────────────────────────────────────────
BOOT_TEST_WEIGHT  = 0.632
BOOT_TRAIN_WEIGHT = 0.368

# ──────────────────────────────────────────────────────────────────────────────
# Risk projection
# ──────────────────────────────────────────────────────────────────────────────
RISK_SCALE       = (0.0, 10.0)
RISK_SCORE_COL   = "OncoCastRiskScore"
SURVIVAL_TIMES   = np.arange(15) * 3.0    # 0, 3, ..., 42
CI_Z             = 1.959964

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────
LOG_FORMAT  = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file: Path | None = None, level: int = logging.INFO) -> None:
    """Root logging to stdout, and to ``log_file`` when given."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
