"""
penalized.py
------------
Penalized Cox fit of one training set, with the penalty strength chosen by
internal K-fold cross-validation (mean held-out C-index).

Penalties
─────────
  LASSO : l1_ratio = 1, alpha path computed by Coxnet on the training set
  RIDGE : near-pure L2 (l1_ratio = RIDGE_L1_RATIO)
  ENET  : Ridge search first; lambda2 = optimal L2 strength × ENET_L2_SCALE,
          then an L1 search over the LASSO path with lambda2 held fixed
          (alpha = lambda1 + lambda2, l1_ratio = lambda1 / alpha)

Solvers
───────
  Right-censored data : sksurv CoxnetSurvivalAnalysis (exact zeros)
  Left-truncated data : lifelines CoxPHFitter with entry_col over a fixed
                        alpha grid; |beta| < ZERO_TOL counts as not selected
Both follow the Coxnet scaling of the objective:
  -loglik / n + alpha * (l1_ratio * |b|_1 + (1 - l1_ratio) / 2 * |b|_2^2)
"""

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np
import pandas as pd
from lifelines import CoxPHFitter
from sklearn.model_selection import KFold
from sksurv.linear_model import CoxnetSurvivalAnalysis

from .config import (
    ALPHA_MIN_RATIO, COXNET_MAX_ITER, ENET_L2_SCALE, LT_ALPHA_GRID,
    N_ALPHAS, N_FOLDS, RIDGE_L1_RATIO, ZERO_TOL,
)
from .data import SurvivalResponse
from .errors import ConfigurationError
from .refit import safe_concordance

log = logging.getLogger(__name__)

SOLVER_ERRORS = (ValueError, ArithmeticError)


class Penalty(str, Enum):
    LASSO = "LASSO"
    RIDGE = "RIDGE"
    ENET = "ENET"

    @classmethod
    def parse(cls, name: "str | Penalty") -> "Penalty":
        try:
            return cls(name)
        except ValueError:
            raise ConfigurationError(
                f"The method you have selected is not available: {name!r}. "
                f"OPTIONS : {', '.join(p.value for p in cls)}."
            ) from None


# ──────────────────────────────────────────────────────────────────────────────
# Solver back-ends
# ──────────────────────────────────────────────────────────────────────────────

class CoxnetSolver:
    """Right-censored data: sksurv's coordinate-descent elastic-net path."""

    def path(self, X: np.ndarray, y: SurvivalResponse, l1_ratio: float,
             alphas: np.ndarray | None = None,
             penalty_factor: np.ndarray | None = None) -> tuple[np.ndarray, np.ndarray]:
        """Returns (alphas, coefs) with coefs of shape (n_features, n_alphas)."""
        model = CoxnetSurvivalAnalysis(
            l1_ratio=l1_ratio,
            alphas=alphas,
            n_alphas=N_ALPHAS,
            alpha_min_ratio=ALPHA_MIN_RATIO,
            penalty_factor=penalty_factor,
            max_iter=COXNET_MAX_ITER,
            fit_baseline_model=False,
        )
        model.fit(X, y.to_structured())
        return np.asarray(model.alphas_, dtype=float), np.asarray(model.coef_, dtype=float)

    def alpha_grid(self, X, y, l1_ratio, penalty_factor=None) -> np.ndarray:
        """Coxnet's own path for this training set, strongest penalty first."""
        alphas, _ = self.path(X, y, l1_ratio, None, penalty_factor)
        return alphas


class LifelinesSolver:
    """Left-truncated data: lifelines' penalized Cox with delayed entry."""

    def path(self, X: np.ndarray, y: SurvivalResponse, l1_ratio: float,
             alphas: np.ndarray | None = None,
             penalty_factor: np.ndarray | None = None) -> tuple[np.ndarray, np.ndarray]:
        alphas = LT_ALPHA_GRID if alphas is None else np.asarray(alphas, dtype=float)
        pf = np.ones(X.shape[1]) if penalty_factor is None else np.asarray(penalty_factor)
        cols = [f"x{j}" for j in range(X.shape[1])]
        df = pd.DataFrame(X, columns=cols)
        df["entry"] = y.entry
        df["time"] = y.time
        df["event"] = y.event.astype(int)

        coefs = np.zeros((X.shape[1], len(alphas)))
        for k, alpha in enumerate(alphas):
            cph = CoxPHFitter(penalizer=alpha * pf, l1_ratio=l1_ratio)
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                cph.fit(df, duration_col="time", event_col="event", entry_col="entry")
            beta = cph.params_.reindex(cols).to_numpy(dtype=float)
            beta[np.abs(beta) < ZERO_TOL] = 0.0
            coefs[:, k] = beta
        return alphas, coefs

    def alpha_grid(self, X, y, l1_ratio, penalty_factor=None) -> np.ndarray:
        return LT_ALPHA_GRID


def solver_for(y: SurvivalResponse):
    return LifelinesSolver() if y.left_truncated else CoxnetSolver()


# ──────────────────────────────────────────────────────────────────────────────
# Cross-validated selection
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PenalizedFit:
    coefficients: np.ndarray      # one entry per feature, 0 = not selected
    alpha: float
    l1_ratio: float
    cv_concordance: float
    lambda2: float | None = None

    @property
    def selected(self) -> np.ndarray:
        return np.flatnonzero(self.coefficients)


def penalty_factor(n_features: int, unpenalized: Sequence[int] = ()) -> np.ndarray:
    factor = np.ones(n_features)
    factor[list(unpenalized)] = 0.0
    return factor


def _groups(grid: list[tuple[float, float]]) -> dict[float, list[int]]:
    """Grid positions sharing one l1_ratio, so each group is a single path fit."""
    groups: dict[float, list[int]] = {}
    for i, (_, l1_ratio) in enumerate(grid):
        groups.setdefault(l1_ratio, []).append(i)
    return groups


def cv_scores(solver, X: np.ndarray, y: SurvivalResponse,
              grid: list[tuple[float, float]], pf: np.ndarray,
              folds: list[tuple[np.ndarray, np.ndarray]]) -> np.ndarray:
    """
    Mean held-out C-index of every (alpha, l1_ratio) in ``grid``.
    Folds where the solver fails or the C-index is undefined are skipped;
    a candidate with no usable fold scores NaN.
    """
    scores = np.full((len(folds), len(grid)), np.nan)
    for l1_ratio, positions in _groups(grid).items():
        alphas = np.array([grid[i][0] for i in positions])
        for k, (tr, val) in enumerate(folds):
            try:
                _, coefs = solver.path(X[tr], y.subset(tr), l1_ratio, alphas, pf)
            except SOLVER_ERRORS as exc:
                log.debug(f"    fold {k} l1_ratio={l1_ratio:.3f}: solver failed ({exc})")
                continue
            risks = X[val] @ coefs
            y_val = y.subset(val)
            for j, pos in enumerate(positions[:coefs.shape[1]]):
                scores[k, pos] = safe_concordance(y_val, risks[:, j])

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return np.nanmean(scores, axis=0)


def select_strength(solver, X: np.ndarray, y: SurvivalResponse,
                    grid: list[tuple[float, float]], pf: np.ndarray,
                    folds: list[tuple[np.ndarray, np.ndarray]]) -> tuple[int, float] | None:
    """Index of the best grid entry and its CV C-index; first wins on ties."""
    scores = cv_scores(solver, X, y, grid, pf, folds)
    if np.all(np.isnan(scores)):
        return None
    best = int(np.nanargmax(scores))
    return best, float(scores[best])


def _path_grid(solver, X, y, l1_ratio, pf) -> list[tuple[float, float]]:
    return [(float(a), l1_ratio) for a in solver.alpha_grid(X, y, l1_ratio, pf)]


def _fit_at(solver, X, y, grid, index, pf) -> np.ndarray:
    """Coefficients on the full training set for grid entry ``index``."""
    l1_ratio = grid[index][1]
    positions = _groups(grid)[l1_ratio]
    alphas = np.array([grid[i][0] for i in positions])
    _, coefs = solver.path(X, y, l1_ratio, alphas, pf)
    # Coxnet may stop the path early; the last fitted alpha stands in
    return coefs[:, min(positions.index(index), coefs.shape[1] - 1)]


def fit_penalized(X: np.ndarray, y: SurvivalResponse, penalty: Penalty,
                  unpenalized: Sequence[int] = (), seed: int = 0,
                  n_folds: int = N_FOLDS) -> PenalizedFit | None:
    """
    Penalized Cox fit with CV-selected strength. Returns None when the solver
    fails or no coefficient is left nonzero.
    """
    penalty = Penalty.parse(penalty)
    solver = solver_for(y)
    pf = penalty_factor(X.shape[1], unpenalized)
    lambda2 = None

    if len(X) < n_folds:
        log.debug(f"  {penalty.value}: {len(X)} training patients, "
                  f"fewer than {n_folds} folds")
        return None

    try:
        folds = list(KFold(n_splits=n_folds, shuffle=True, random_state=seed).split(X))
        if penalty is Penalty.LASSO:
            grid = _path_grid(solver, X, y, 1.0, pf)
        elif penalty is Penalty.RIDGE:
            grid = _path_grid(solver, X, y, RIDGE_L1_RATIO, pf)
        else:
            ridge_grid = _path_grid(solver, X, y, RIDGE_L1_RATIO, pf)
            ridge = select_strength(solver, X, y, ridge_grid, pf, folds)
            if ridge is None:
                log.debug("  ENET: no usable L2 strength")
                return None
            ridge_alpha = ridge_grid[ridge[0]][0]
            lambda2 = ridge_alpha * (1 - RIDGE_L1_RATIO) * ENET_L2_SCALE
            lasso_alphas = solver.alpha_grid(X, y, 1.0, pf)
            grid = [(float(l1 + lambda2), float(l1 / (l1 + lambda2)))
                    for l1 in lasso_alphas]

        best = select_strength(solver, X, y, grid, pf, folds)
        if best is None:
            log.debug(f"  {penalty.value}: no candidate could be scored")
            return None
        index, cv_c = best
        coefs = _fit_at(solver, X, y, grid, index, pf)
    except SOLVER_ERRORS as exc:
        log.debug(f"  {penalty.value}: solver failed ({exc})")
        return None

    if not np.any(coefs):
        log.debug(f"  {penalty.value}: no feature selected")
        return None

    alpha, l1_ratio = grid[index]
    return PenalizedFit(
        coefficients=coefs,
        alpha=alpha,
        l1_ratio=l1_ratio,
        cv_concordance=cv_c,
        lambda2=lambda2,
    )
