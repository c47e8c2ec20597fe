"""
resampling.py
-------------
Train/test partitions for one resampling run. The run index seeds the
generator, so a given (n_patients, run, sampling) always yields the same split.

  cv   : ceil(N/3) patients drawn without replacement form the test set
  boot : N draws with replacement form the training set, the patients never
         drawn (out-of-bag) form the test set, which may be empty
"""

import math
from dataclasses import dataclass

import numpy as np

from .config import SAMPLING_MODES, TEST_FRACTION
from .errors import ConfigurationError


@dataclass(frozen=True)
class Split:
    train: np.ndarray
    test: np.ndarray


def check_sampling(sampling: str) -> str:
    if sampling not in SAMPLING_MODES:
        raise ConfigurationError(
            f"This sampling method is not available: {sampling!r}. "
            f"OPTIONS : {' or '.join(repr(s) for s in SAMPLING_MODES)}."
        )
    return sampling


def resample(n_patients: int, run: int, sampling: str = "cv") -> Split:
    """Row indices of the training and test sets for ``run``."""
    check_sampling(sampling)
    rng = np.random.default_rng(run)
    idx = np.arange(n_patients)

    if sampling == "cv":
        n_test = math.ceil(n_patients * TEST_FRACTION)
        test = rng.choice(n_patients, size=n_test, replace=False)
        train = np.setdiff1d(idx, test)
        return Split(train=train, test=test)

    train = rng.integers(0, n_patients, size=n_patients)
    test = np.setdiff1d(idx, train)
    return Split(train=train, test=test)
