import numpy as np
import pandas as pd
import pytest

from oncocast import EnsembleResult, RunResult, oncocast

FORMULA = "Surv(time, status) ~ ."
LT_FORMULA = "Surv(time1, time2, status) ~ ."


def make_cohort(n: int = 30, p: int = 5, seed: int = 0,
                left_truncated: bool = False) -> pd.DataFrame:
    """
    Binary mutation features; hazard driven by Gene1 (strong) and Gene2.
    Right-censored (time, status) or left-truncated (time1, time2, status).
    """
    rng = np.random.default_rng(seed)
    X = rng.binomial(1, 0.5, size=(n, p))
    lp = 2.0 * X[:, 0] + 1.0 * X[:, 1]
    event_time = rng.exponential(10.0 * np.exp(-lp))
    censor_time = rng.exponential(30.0, size=n)
    time = np.minimum(event_time, censor_time) + 0.1
    status = (event_time <= censor_time).astype(int)

    df = pd.DataFrame(X, columns=[f"Gene{j + 1}" for j in range(p)],
                      index=[f"P{i + 1}" for i in range(n)])
    if left_truncated:
        df.insert(0, "status", status)
        df.insert(0, "time2", time)
        df.insert(0, "time1", time * rng.uniform(0.0, 0.3, size=n))
    else:
        df.insert(0, "status", status)
        df.insert(0, "time", time)
    return df


@pytest.fixture
def cohort() -> pd.DataFrame:
    return make_cohort()


@pytest.fixture
def lt_cohort() -> pd.DataFrame:
    return make_cohort(n=40, seed=3, left_truncated=True)


@pytest.fixture(scope="session")
def lasso_cohort() -> pd.DataFrame:
    return make_cohort()


@pytest.fixture(scope="session")
def lasso_ensemble(lasso_cohort) -> EnsembleResult:
    """LASSO, 10 CV runs seeded 1..10 on 30 patients × 5 binary features."""
    out = oncocast(lasso_cohort, FORMULA, method="LASSO", runs=10,
                   sampling="cv", cores=1, save=False)
    return out["LASSO"]


@pytest.fixture
def toy_ensemble() -> EnsembleResult:
    """
    Two hand-built runs over features A, B, C (C never selected).
    Average risk of the cohort spans [-1, 1].
    """
    runs = (
        RunResult(run=1, method="LASSO", concordance=0.7,
                  coefficients={"A": 1.0, "B": None, "C": None},
                  predicted={"P1": -0.5, "P2": 0.5, "P3": None, "P4": None},
                  means={"A": 0.5}),
        RunResult(run=2, method="LASSO", concordance=0.6,
                  coefficients={"A": None, "B": 2.0, "C": None},
                  predicted={"P1": None, "P2": None, "P3": -1.0, "P4": 1.0},
                  means={"B": 0.5}),
    )
    return EnsembleResult(method="LASSO", sampling="cv",
                          features=("A", "B", "C"),
                          patients=("P1", "P2", "P3", "P4"),
                          requested_runs=3, runs=runs)
