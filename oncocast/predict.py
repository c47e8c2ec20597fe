"""
predict.py
----------
Risk score of new/incoming patients from a trained ensemble.

  1. reference range = min/max of the training cohort's average risk
  2. new columns matched to the trained features by name; trained features
     absent from the new data are added as zeros (no mutation)
  3. per run: selected features only, centred on that run's training means,
     dot product with its coefficients
  4. mean over runs, rescaled onto [0, 10] against the training cohort's
     range so scores stay comparable across cohorts

Individual survival curves at t = 0, 3, ..., 42 are available for chosen
patients given a RiskRefit (see summary.refit_risk).
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from .config import CI_Z, RISK_SCORE_COL, SURVIVAL_TIMES
from .errors import NoOverlappingFeaturesError, OncoCastError
from .results import EnsembleResult
from .summary import SCORE_COL, RiskRefit, rescale_risk

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncomingPrediction:
    data: pd.DataFrame                  # new data + OncoCastRiskScore column
    raw_risk: pd.Series                 # mean linear score over runs
    survival: pd.DataFrame | None = None


def align_features(new_data: pd.DataFrame, features: Sequence[str]) -> pd.DataFrame:
    """New data restricted and ordered to ``features``, absent ones set to 0."""
    trained = set(features)
    overlap = [c for c in new_data.columns if c in trained]
    if not overlap:
        raise NoOverlappingFeaturesError(
            "No feature in your dataset overlapped with the trained feature set. "
            "Please rename genes or check your dataset."
        )
    missing = [f for f in features if f not in new_data.columns]
    if missing:
        log.info(f"  {len(missing)}/{len(features)} trained features absent "
                 f"from new data, set to 0")
    return new_data[overlap].astype(float).reindex(columns=list(features),
                                                   fill_value=0.0)


def run_scores(ensemble: EnsembleResult, aligned: pd.DataFrame) -> pd.DataFrame:
    """patients × runs linear scores, each run using its own selected features."""
    scores = {}
    for r in ensemble:
        names = [f for f, b in r.selected.items() if b != 0]
        coefs = np.array([r.selected[f] for f in names])
        centred = aligned[names].to_numpy() - np.array([r.means[f] for f in names])
        scores[r.run] = centred @ coefs
    return pd.DataFrame(scores, index=aligned.index)


def predict_incoming(ensemble: EnsembleResult, new_data: pd.DataFrame,
                     surv_print: Sequence | None = None,
                     risk_refit: RiskRefit | None = None) -> IncomingPrediction:
    """
    ``surv_print`` lists index labels of new patients whose survival curves
    are wanted; it requires ``risk_refit``.
    """
    ensemble.check_not_empty()
    reference = ensemble.average_risk()
    if reference.notna().sum() == 0:
        raise OncoCastError("No patient of the training cohort has a predicted risk.")

    aligned = align_features(new_data, ensemble.features)
    raw = run_scores(ensemble, aligned).mean(axis=1).rename("raw_risk")

    out = new_data.copy()
    out[RISK_SCORE_COL] = rescale_risk(raw, reference).to_numpy()
    log.info(f"  Scored {len(out)} incoming patients over {len(ensemble)} runs")

    survival = None
    if surv_print is not None:
        if risk_refit is None:
            raise OncoCastError("Survival curves require a risk refit model.")
        survival = survival_curves(risk_refit, out.loc[list(surv_print), RISK_SCORE_COL])
    return IncomingPrediction(data=out, raw_risk=raw, survival=survival)


def survival_curves(risk_refit: RiskRefit, scores: pd.Series,
                    times: np.ndarray = SURVIVAL_TIMES) -> pd.DataFrame:
    """
    Long table (Patient, Time, Surv, Lower, Upper, RiskScore). Bounds come from
    the 95% interval of the risk-score coefficient; baseline hazard is taken as
    fixed.
    """
    cph = risk_refit.model
    beta = float(cph.params_[SCORE_COL])
    se = float(cph.standard_errors_[SCORE_COL])
    b_lo, b_hi = beta - CI_Z * se, beta + CI_Z * se

    h0 = cph.baseline_cumulative_hazard_.iloc[:, 0]
    pos = np.searchsorted(h0.index.to_numpy(), times, side="right") - 1
    cumhaz = np.where(pos >= 0, h0.to_numpy()[np.clip(pos, 0, None)], 0.0)

    frames = []
    for patient, score in scores.items():
        dx = score - risk_refit.score_mean
        surv = np.exp(-cumhaz * np.exp(beta * dx))
        s_lo = np.exp(-cumhaz * np.exp(b_lo * dx))
        s_hi = np.exp(-cumhaz * np.exp(b_hi * dx))
        frames.append(pd.DataFrame({
            "Patient":   patient,
            "Time":      times,
            "Surv":      surv,
            "Lower":     np.round(np.minimum(s_lo, s_hi), 2),
            "Upper":     np.round(np.maximum(s_lo, s_hi), 2),
            "RiskScore": score,
        }))
    return pd.concat(frames, ignore_index=True)
