"""
summary.py
----------
Reporting on a finished ensemble.

  concordance_summary   distribution of per-run C-indices
  selection_summary     selection frequency and mean coefficient per feature
  rescale_risk          affine rescale of risk onto [0, 10] against a
                        reference cohort
  refit_risk            Cox model of survival on the rescaled average risk,
                        used for individual survival curves of new patients
  stratify_risk         quantile risk groups, KM medians, log-rank test
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
from lifelines import CoxPHFitter, KaplanMeierFitter
from lifelines.statistics import multivariate_logrank_test

from .config import RISK_SCALE
from .data import SurvivalData, prepare_data
from .results import EnsembleResult

log = logging.getLogger(__name__)

SCORE_COL = "RiskScore"


def concordance_summary(ensemble: EnsembleResult) -> pd.Series:
    ensemble.check_not_empty()
    return ensemble.concordances().describe()


def selection_summary(ensemble: EnsembleResult) -> pd.DataFrame:
    """
    Per feature: fraction of runs selecting it, mean / SD of its coefficient
    over those runs, and the hazard ratio at the mean coefficient.
    """
    ensemble.check_not_empty()
    coefs = ensemble.coefficient_matrix()
    table = pd.DataFrame({
        "selection_freq": coefs.notna().mean(axis=0),
        "mean_coef":      coefs.mean(axis=0, skipna=True),
        "sd_coef":        coefs.std(axis=0, skipna=True),
    })
    table["hazard_ratio"] = np.exp(table["mean_coef"])
    table.index.name = "feature"
    order = table.assign(_abs=table["mean_coef"].abs().fillna(0.0)) \
                 .sort_values(["selection_freq", "_abs"], ascending=False).index
    return table.loc[order]


def rescale_risk(raw, reference, to: tuple[float, float] = RISK_SCALE):
    """
    (raw - min(reference)) / (max(reference) - min(reference)) onto ``to``.
    Values outside the reference range are not clipped; a zero-width
    reference range maps everything to the centre of ``to``.
    """
    lo = float(np.nanmin(np.asarray(reference, dtype=float)))
    hi = float(np.nanmax(np.asarray(reference, dtype=float)))
    if hi - lo == 0:
        centre = (to[0] + to[1]) / 2
        return raw * 0.0 + centre
    return (raw - lo) / (hi - lo) * (to[1] - to[0]) + to[0]


def _response_frame(survival: SurvivalData) -> pd.DataFrame:
    resp = survival.response
    frame = pd.DataFrame({"time": resp.time, "event": resp.event.astype(int)},
                         index=pd.Index(survival.patients, name="patient"))
    if resp.left_truncated:
        frame["entry"] = resp.entry
    return frame


# ──────────────────────────────────────────────────────────────────────────────
# Risk refit
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RiskRefit:
    """lifelines Cox model of the cohort's survival on its rescaled risk."""

    model: CoxPHFitter
    score_mean: float


def refit_risk(ensemble: EnsembleResult, data: pd.DataFrame, formula) -> RiskRefit:
    ensemble.check_not_empty()
    survival = prepare_data(data, formula)
    avg = ensemble.average_risk()

    frame = _response_frame(survival)
    frame[SCORE_COL] = rescale_risk(avg, avg).reindex(frame.index)
    frame = frame.dropna(subset=[SCORE_COL])

    cph = CoxPHFitter()
    cph.fit(frame, duration_col="time", event_col="event",
            entry_col="entry" if survival.response.left_truncated else None)
    log.info(f"  Risk refit on {len(frame)} patients: "
             f"HR per risk unit = {np.exp(cph.params_[SCORE_COL]):.3f}")
    return RiskRefit(model=cph, score_mean=float(frame[SCORE_COL].mean()))


# ──────────────────────────────────────────────────────────────────────────────
# Risk stratification
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RiskStrata:
    groups: pd.Series          # patient → risk group (1 = lowest risk)
    table: pd.DataFrame        # per group: n, events, risk range, KM median
    logrank_p: float


def stratify_risk(ensemble: EnsembleResult, data: pd.DataFrame, formula,
                  cuts: Sequence[float] = (0.5,)) -> RiskStrata:
    """
    Split patients with a risk estimate into ``len(cuts) + 1`` groups at the
    given quantiles of the average risk.
    """
    ensemble.check_not_empty()
    survival = prepare_data(data, formula)
    frame = _response_frame(survival)
    frame["risk"] = ensemble.average_risk().reindex(frame.index)
    frame = frame.dropna(subset=["risk"])

    thresholds = np.quantile(frame["risk"], sorted(cuts))
    frame["risk_group"] = np.digitize(frame["risk"], thresholds, right=True) + 1

    rows = []
    for group, sub in frame.groupby("risk_group"):
        kmf = KaplanMeierFitter()
        kmf.fit(sub["time"], event_observed=sub["event"],
                entry=sub["entry"] if "entry" in sub else None)
        rows.append({
            "risk_group":      group,
            "n":               len(sub),
            "events":          int(sub["event"].sum()),
            "risk_min":        sub["risk"].min(),
            "risk_max":        sub["risk"].max(),
            "median_survival": float(kmf.median_survival_time_),
        })
    table = pd.DataFrame(rows).set_index("risk_group")

    if frame["risk_group"].nunique() > 1:
        res = multivariate_logrank_test(frame["time"], frame["risk_group"],
                                        frame["event"])
        p = float(res.p_value)
    else:
        p = float("nan")
    log.info(f"  Risk stratification: {len(table)} groups, log-rank p = {p:.4g}")
    return RiskStrata(groups=frame["risk_group"], table=table, logrank_p=p)
