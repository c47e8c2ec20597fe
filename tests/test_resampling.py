import math

import numpy as np
import pytest

from oncocast import ConfigurationError, resample


@pytest.mark.parametrize("n", [1, 2, 3, 10, 30, 31, 100])
def test_cv_split_is_a_partition(n):
    for run in range(1, 6):
        split = resample(n, run, "cv")
        assert len(split.test) == math.ceil(n / 3)
        assert len(split.train) + len(split.test) == n
        assert np.intersect1d(split.train, split.test).size == 0
        assert len(np.unique(split.test)) == len(split.test)


def test_bootstrap_test_is_out_of_bag():
    n = 40
    for run in range(1, 6):
        split = resample(n, run, "boot")
        assert len(split.train) == n
        assert np.array_equal(split.test, np.setdiff1d(np.arange(n), split.train))
        assert np.intersect1d(split.train, split.test).size == 0


def test_bootstrap_draws_with_replacement():
    split = resample(50, 7, "boot")
    assert len(np.unique(split.train)) < 50


def test_bootstrap_single_patient_has_empty_test_set():
    split = resample(1, 1, "boot")
    assert split.test.size == 0


@pytest.mark.parametrize("sampling", ["cv", "boot"])
def test_same_run_gives_identical_split(sampling):
    a = resample(25, 4, sampling)
    b = resample(25, 4, sampling)
    assert np.array_equal(a.train, b.train)
    assert np.array_equal(a.test, b.test)


def test_different_runs_differ():
    assert not np.array_equal(resample(60, 1).test, resample(60, 2).test)


def test_unknown_sampling_rejected():
    with pytest.raises(ConfigurationError):
        resample(10, 1, "jackknife")
