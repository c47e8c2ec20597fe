"""
results.py
----------
Per-run and per-ensemble results, and their JSON persistence.

Missing markers are explicit ``None`` values: a coefficient is ``None`` when
the feature was not selected in that run, a prediction is ``None`` when the
patient was not in that run's test set. Derived pandas views turn them into
NaN.

Artifact name:  {study}_{sampling}_{method}.json
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

import numpy as np
import pandas as pd

from .errors import OncoCastError

log = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _opt_float(x) -> float | None:
    return None if x is None else float(x)


@dataclass(frozen=True)
class RunResult:
    run: int
    method: str
    concordance: float
    coefficients: Mapping[str, float | None]
    predicted: Mapping[str, float | None]
    means: Mapping[str, float]
    lambda2: float | None = None

    @property
    def selected(self) -> dict[str, float]:
        return {k: v for k, v in self.coefficients.items() if v is not None}

    def to_dict(self) -> dict:
        return {
            "run":          int(self.run),
            "method":       self.method,
            "concordance":  float(self.concordance),
            "coefficients": {k: _opt_float(v) for k, v in self.coefficients.items()},
            "predicted":    {k: _opt_float(v) for k, v in self.predicted.items()},
            "means":        {k: float(v) for k, v in self.means.items()},
            "lambda2":      _opt_float(self.lambda2),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RunResult":
        return cls(
            run=int(d["run"]),
            method=d["method"],
            concordance=float(d["concordance"]),
            coefficients={k: _opt_float(v) for k, v in d["coefficients"].items()},
            predicted={k: _opt_float(v) for k, v in d["predicted"].items()},
            means={k: float(v) for k, v in d["means"].items()},
            lambda2=_opt_float(d.get("lambda2")),
        )


@dataclass(frozen=True)
class EnsembleResult:
    """Successful runs of one penalty type, in run-index order."""

    method: str
    sampling: str
    features: tuple[str, ...]
    patients: tuple[str, ...]
    requested_runs: int
    runs: tuple[RunResult, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.runs)

    def __iter__(self):
        return iter(self.runs)

    def __getitem__(self, i: int) -> RunResult:
        return self.runs[i]

    def check_not_empty(self) -> None:
        if not self.runs:
            raise OncoCastError(
                f"{self.method} ensemble contains no successful run "
                f"(0 of {self.requested_runs})."
            )

    # ── pandas views ─────────────────────────────────────────────────────────
    def concordances(self) -> pd.Series:
        return pd.Series([r.concordance for r in self.runs],
                         index=pd.Index([r.run for r in self.runs], name="run"),
                         name="concordance", dtype=float)

    def coefficient_matrix(self) -> pd.DataFrame:
        """runs × features, NaN = not selected."""
        rows = [[np.nan if r.coefficients.get(f) is None else r.coefficients[f]
                 for f in self.features] for r in self.runs]
        return pd.DataFrame(rows, columns=list(self.features),
                            index=pd.Index([r.run for r in self.runs], name="run"),
                            dtype=float)

    def prediction_matrix(self) -> pd.DataFrame:
        """patients × runs, NaN = patient not in that run's test set."""
        cols = {r.run: [np.nan if r.predicted.get(p) is None else r.predicted[p]
                        for p in self.patients] for r in self.runs}
        return pd.DataFrame(cols, index=pd.Index(self.patients, name="patient"),
                            dtype=float)

    def average_risk(self) -> pd.Series:
        """Mean predicted risk per patient over the runs that tested them."""
        return self.prediction_matrix().mean(axis=1, skipna=True).rename("average_risk")

    # ── persistence ──────────────────────────────────────────────────────────
    def to_dict(self) -> dict:
        return {
            "format_version": FORMAT_VERSION,
            "method":         self.method,
            "sampling":       self.sampling,
            "features":       list(self.features),
            "patients":       list(self.patients),
            "requested_runs": int(self.requested_runs),
            "runs":           [r.to_dict() for r in self.runs],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "EnsembleResult":
        return cls(
            method=d["method"],
            sampling=d["sampling"],
            features=tuple(d["features"]),
            patients=tuple(d["patients"]),
            requested_runs=int(d["requested_runs"]),
            runs=tuple(RunResult.from_dict(r) for r in d["runs"]),
        )

    def dump(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as fh:
            json.dump(self.to_dict(), fh)
        log.info(f"  {self.method} ensemble ({len(self)} runs) → {path}")
        return path

    @classmethod
    def load(cls, path: Path) -> "EnsembleResult":
        with open(path) as fh:
            return cls.from_dict(json.load(fh))


def artifact_name(study_type: str, sampling: str, method: str) -> str:
    return f"{study_type}_{sampling}_{method}.json"
