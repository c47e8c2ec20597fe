"""
pipeline.py
-----------
Repeated penalized Cox regression over resampled splits of a survival dataset.

Per run (seeded by the run index)
─────────────────────────────────
  split → penalized fit (internal 5-fold CV) → refit with fixed coefficients
        → concordance on the test set → predictions for the test patients

  A run whose solver fails or selects no feature is dropped from the
  ensemble; a failure in one run never aborts the others.

Concordance
───────────
  cv   : C-index on the held-out third
  boot : .632 × out-of-bag C-index + .368 × training C-index; the training
         C-index alone when the out-of-bag set is empty or has no comparable
         pairs

Run from Python:
  ensembles = oncocast(df, "Surv(time, status) ~ .", method=["LASSO"], runs=100)
"""

import logging
import math
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .config import (
    BOOT_TEST_WEIGHT, BOOT_TRAIN_WEIGHT, DEFAULT_RUNS, MIN_RECOMMENDED_RUNS,
)
from .data import SurvivalData, SurvivalResponse, check_unpenalized, prepare_data
from .errors import ConfigurationError
from .penalized import Penalty, fit_penalized
from .refit import FixedCoxModel, safe_concordance
from .resampling import check_sampling, resample
from .results import EnsembleResult, RunResult, artifact_name

log = logging.getLogger(__name__)


def check_runs(runs: int) -> int:
    if runs < 1:
        raise ConfigurationError(
            "The number of cross-validation/bootstraps MUST be positive.")
    if runs < MIN_RECOMMENDED_RUNS:
        log.warning(f"We do not recommend using a number of cross-validation/"
                    f"bootstraps lower than {MIN_RECOMMENDED_RUNS} (got {runs}).")
    return runs


# ──────────────────────────────────────────────────────────────────────────────
# One run
# ──────────────────────────────────────────────────────────────────────────────

def score_run(model: FixedCoxModel, X_tr: np.ndarray, y_tr: SurvivalResponse,
              X_te: np.ndarray, y_te: SurvivalResponse,
              sampling: str, run: int) -> float | None:
    """Held-out (cv) or .632-corrected (boot) C-index; None if undefined."""
    test_c = safe_concordance(y_te, model.linear_predictor(X_te))
    if sampling == "cv":
        if math.isnan(test_c):
            log.warning(f"  run {run}: test set has no comparable pairs, discarded")
            return None
        return test_c

    train_c = safe_concordance(y_tr, model.linear_predictor(X_tr))
    if math.isnan(test_c):
        if math.isnan(train_c):
            return None
        log.warning(f"  run {run}: out-of-bag C-index undefined "
                    f"({len(y_te)} patients), using training C-index only")
        return train_c
    if math.isnan(train_c):
        return test_c
    return BOOT_TEST_WEIGHT * test_c + BOOT_TRAIN_WEIGHT * train_c


def run_single(data: SurvivalData, penalty: Penalty, run: int,
               sampling: str = "cv",
               unpenalized: Sequence[int] = ()) -> RunResult | None:
    log.info(f"Run : {run}")
    split = resample(data.n_patients, run, sampling)
    X_tr, y_tr = data.subset(split.train)
    X_te, y_te = data.subset(split.test)

    fit = fit_penalized(X_tr, y_tr, penalty, unpenalized, seed=run)
    if fit is None:
        log.info(f"  run {run}: no feature selected, discarded")
        return None

    sel = fit.selected
    names = [data.features[j] for j in sel]
    model = FixedCoxModel.fit(X_tr[:, sel], y_tr, fit.coefficients[sel], names)
    log.debug(f"  run {run} refit:\n{model.summary().to_string(float_format='%.4f')}")

    ci = score_run(model, X_tr[:, sel], y_tr, X_te[:, sel], y_te, sampling, run)
    if ci is None:
        return None

    predicted: dict[str, float | None] = dict.fromkeys(data.patients)
    for i, lp in zip(split.test, model.linear_predictor(X_te[:, sel])):
        predicted[data.patients[i]] = float(lp)

    coefficients: dict[str, float | None] = dict.fromkeys(data.features)
    for name, beta in zip(names, model.coef):
        coefficients[name] = float(beta)

    return RunResult(
        run=run,
        method=Penalty.parse(penalty).value,
        concordance=ci,
        coefficients=coefficients,
        predicted=predicted,
        means={name: float(m) for name, m in zip(names, model.means)},
        lambda2=fit.lambda2,
    )


def _isolated_run(data, penalty, run, sampling, unpenalized) -> RunResult | None:
    try:
        return run_single(data, penalty, run, sampling, unpenalized)
    except Exception as exc:
        log.warning(f"  run {run} failed: {exc!r}")
        return None


# ──────────────────────────────────────────────────────────────────────────────
# Ensemble
# ──────────────────────────────────────────────────────────────────────────────

def run_ensemble(data: SurvivalData, penalty: "Penalty | str",
                 runs: int = DEFAULT_RUNS, sampling: str = "cv",
                 cores: int = 1, unpenalized: Sequence[str] | None = None,
                 timeout: float | None = None) -> EnsembleResult:
    """
    Runs 1..``runs`` in parallel on ``cores`` workers, collected in run order.
    ``timeout`` (seconds) is handed to joblib as a per-task deadline. It is
    only enforced when ``cores != 1``, and a run exceeding it aborts the whole
    batch: joblib raises ``TimeoutError`` and no ensemble is returned. Errors
    raised inside a run never abort the batch.
    """
    penalty = Penalty.parse(penalty)
    check_sampling(sampling)
    if runs < 1:
        raise ConfigurationError(
            "The number of cross-validation/bootstraps MUST be positive.")
    unpen_idx = [data.features.index(c)
                 for c in check_unpenalized(data.features, unpenalized)]

    log.info(f"{penalty.value} SELECTED — {runs} runs, sampling={sampling}, cores={cores}")
    outcomes = Parallel(n_jobs=cores, timeout=timeout)(
        delayed(_isolated_run)(data, penalty, run, sampling, unpen_idx)
        for run in range(1, runs + 1)
    )
    kept = tuple(r for r in outcomes if r is not None)

    if kept:
        cis = np.array([r.concordance for r in kept])
        log.info(f"  {penalty.value}: {len(kept)}/{runs} runs kept, "
                 f"C-index = {cis.mean():.4f} ± {cis.std():.4f}")
    else:
        log.warning(f"  {penalty.value}: no run selected any feature")

    return EnsembleResult(
        method=penalty.value,
        sampling=sampling,
        features=data.features,
        patients=data.patients,
        requested_runs=runs,
        runs=kept,
    )


def oncocast(data: pd.DataFrame, formula,
             method: "str | Sequence[str]" = ("LASSO", "RIDGE", "ENET"),
             runs: int = DEFAULT_RUNS, sampling: str = "cv", cores: int = 1,
             unpenalized: Sequence[str] | None = None,
             path_results: "str | Path" = "", study_type: str = "",
             save: bool = True,
             timeout: float | None = None) -> dict[str, EnsembleResult]:
    """
    Validate the inputs, then build one ensemble per requested penalty type.

    Every configuration error is raised before the first run starts. With
    ``save=True`` each ensemble is also written to
    ``{path_results}/{study_type}_{sampling}_{method}.json``.
    """
    survival = prepare_data(data, formula)
    methods = [method] if isinstance(method, str) else list(method)
    penalties = [Penalty.parse(m) for m in methods]
    check_sampling(sampling)
    check_runs(runs)
    check_unpenalized(survival.features, unpenalized)
    log.info("Data check performed, ready for analysis.")

    output: dict[str, EnsembleResult] = {}
    for penalty in penalties:
        ensemble = run_ensemble(survival, penalty, runs=runs, sampling=sampling,
                                cores=cores, unpenalized=unpenalized,
                                timeout=timeout)
        if save:
            ensemble.dump(Path(path_results) / artifact_name(study_type, sampling,
                                                             penalty.value))
        output[penalty.value] = ensemble
    return output
