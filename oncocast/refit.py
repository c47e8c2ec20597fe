"""
refit.py
--------
Unpenalized Cox model restricted to the features a penalized fit selected,
with the penalized coefficients held fixed (no re-optimisation). It provides
what the downstream aggregation needs from a fitted model:

  means               training-set column means, used to centre predictions
  linear_predictor    (x - means) · beta
  std_errors          from the Cox information matrix at beta (Breslow ties,
                      risk sets honour delayed entry)
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
from scipy.stats import norm
from sksurv.metrics import concordance_index_censored

from .data import SurvivalResponse

log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Concordance
# ──────────────────────────────────────────────────────────────────────────────

def concordance(response: SurvivalResponse, risk: np.ndarray) -> float:
    """
    Harrell's C of ``risk`` (higher = earlier event) against the exit times.
    Raises ValueError for an empty set or one without comparable pairs.
    """
    if len(response) == 0:
        raise ValueError("Cannot compute concordance on an empty set.")
    return float(concordance_index_censored(
        response.event.astype(bool), response.time.astype(float),
        np.asarray(risk, dtype=float),
    )[0])


def safe_concordance(response: SurvivalResponse, risk: np.ndarray) -> float:
    """Like :func:`concordance` but NaN when it is undefined."""
    try:
        return concordance(response, risk)
    except ValueError:
        return float("nan")


# ──────────────────────────────────────────────────────────────────────────────
# Information matrix
# ──────────────────────────────────────────────────────────────────────────────

def cox_information(X: np.ndarray, response: SurvivalResponse,
                    beta: np.ndarray) -> np.ndarray:
    """Observed information of the Cox partial likelihood at ``beta``."""
    n, p = X.shape
    eta = X @ beta
    w = np.exp(eta - eta.max())
    entry = response.entry if response.left_truncated else np.full(n, -np.inf)
    events = response.event.astype(bool)

    info = np.zeros((p, p))
    for t in np.unique(response.time[events]):
        at_risk = (response.time >= t) & (entry < t)
        d = np.sum(events & (response.time == t))
        wr = w[at_risk]
        Xr = X[at_risk]
        s0 = wr.sum()
        xbar = wr @ Xr / s0
        s2 = (Xr * wr[:, None]).T @ Xr / s0
        info += d * (s2 - np.outer(xbar, xbar))
    return info


# ──────────────────────────────────────────────────────────────────────────────
# Fixed-coefficient Cox model
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FixedCoxModel:
    features: tuple[str, ...]
    coef: np.ndarray
    means: np.ndarray
    std_errors: np.ndarray

    @classmethod
    def fit(cls, X: np.ndarray, response: SurvivalResponse,
            coef: np.ndarray, features: Sequence[str]) -> "FixedCoxModel":
        """
        ``X`` holds only the selected columns of the training set and ``coef``
        their penalized coefficients.
        """
        coef = np.asarray(coef, dtype=float)
        means = X.mean(axis=0)
        info = cox_information(X - means, response, coef)
        variances = np.diag(np.linalg.pinv(info))
        std_errors = np.sqrt(np.clip(variances, 0.0, None))
        return cls(tuple(features), coef, means, std_errors)

    def linear_predictor(self, X: np.ndarray) -> np.ndarray:
        return (X - self.means) @ self.coef

    def summary(self) -> pd.DataFrame:
        with np.errstate(divide="ignore", invalid="ignore"):
            z = self.coef / self.std_errors
        return pd.DataFrame(
            {
                "coef":      self.coef,
                "exp(coef)": np.exp(self.coef),
                "se(coef)":  self.std_errors,
                "z":         z,
                "p":         2 * norm.sf(np.abs(z)),
            },
            index=pd.Index(self.features, name="feature"),
        )
