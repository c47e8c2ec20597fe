"""
data.py
-------
Input contract of the pipeline: a patients × columns DataFrame plus a survival
formula naming the response columns.

  Surv(time, status) ~ .           right-censored
  Surv(time1, time2, status) ~ .   left-truncated (entry, exit, event)

The right-hand side of the formula is ignored; every column that is not part
of the response is used as a feature.
"""

import logging
import re
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from .errors import ConfigurationError

log = logging.getLogger(__name__)

_SURV_RE = re.compile(r"^\s*Surv\s*\((?P<args>[^)]*)\)")
_ARITY_MSG = ("Response must be a 'survival' object with 'Surv(time, event)' "
              "or 'Surv(time1, time2, event)'.")


def make_surv_array(events: np.ndarray, times: np.ndarray) -> np.ndarray:
    """Build sksurv structured array from event/time arrays."""
    return np.array(
        [(bool(e), float(t)) for e, t in zip(events, times)],
        dtype=[("event", bool), ("time", float)],
    )


@dataclass(frozen=True)
class SurvivalFormula:
    """Names of the response columns, in ``Surv(...)`` argument order."""

    columns: tuple[str, ...]

    @classmethod
    def parse(cls, formula: "str | Sequence[str] | SurvivalFormula") -> "SurvivalFormula":
        if isinstance(formula, SurvivalFormula):
            return formula
        if isinstance(formula, str):
            match = _SURV_RE.match(formula)
            if match is None:
                raise ConfigurationError(_ARITY_MSG)
            columns = tuple(c.strip() for c in match.group("args").split(",")
                            if c.strip())
        else:
            columns = tuple(str(c) for c in formula)
        if len(columns) not in (2, 3):
            raise ConfigurationError(_ARITY_MSG)
        return cls(columns)

    @property
    def left_truncated(self) -> bool:
        return len(self.columns) == 3

    @property
    def entry_col(self) -> str | None:
        return self.columns[0] if self.left_truncated else None

    @property
    def time_col(self) -> str:
        return self.columns[-2]

    @property
    def event_col(self) -> str:
        return self.columns[-1]

    def __str__(self) -> str:
        return f"Surv({', '.join(self.columns)}) ~ ."


@dataclass(frozen=True)
class SurvivalResponse:
    """Event indicator, exit time and (left-truncated data only) entry time."""

    time: np.ndarray
    event: np.ndarray
    entry: np.ndarray | None = None

    def __len__(self) -> int:
        return len(self.time)

    @property
    def left_truncated(self) -> bool:
        return self.entry is not None

    def subset(self, idx: np.ndarray) -> "SurvivalResponse":
        return SurvivalResponse(
            time=self.time[idx],
            event=self.event[idx],
            entry=None if self.entry is None else self.entry[idx],
        )

    def to_structured(self) -> np.ndarray:
        return make_surv_array(self.event, self.time)


@dataclass(frozen=True)
class SurvivalData:
    """Validated, read-only view of the input dataset."""

    X: np.ndarray
    response: SurvivalResponse
    features: tuple[str, ...]
    patients: tuple[str, ...]
    formula: SurvivalFormula

    @property
    def n_patients(self) -> int:
        return self.X.shape[0]

    @property
    def n_features(self) -> int:
        return self.X.shape[1]

    def subset(self, idx: np.ndarray) -> tuple[np.ndarray, SurvivalResponse]:
        return self.X[idx], self.response.subset(idx)

    def feature_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.X, index=list(self.patients),
                            columns=list(self.features))


def prepare_data(data: pd.DataFrame, formula) -> SurvivalData:
    """
    Check the dataset against the formula and split it into design matrix and
    survival response. Raises ConfigurationError on any violation.
    """
    formula = SurvivalFormula.parse(formula)

    if data.isna().to_numpy().any():
        raise ConfigurationError(
            "Missing data is not allowed at this time, "
            "please remove or impute missing data."
        )

    absent = [c for c in formula.columns if c not in data.columns]
    if absent:
        raise ConfigurationError(f"Response column(s) not found in data: {absent}")

    features = [str(c) for c in data.columns if c not in formula.columns]
    if not features:
        raise ConfigurationError("Data contains no feature column besides the response.")

    patients = data.index.astype(str)
    if patients.has_duplicates:
        raise ConfigurationError("Patient identifiers (row index) must be unique.")

    try:
        X = data[[c for c in data.columns if c not in formula.columns]].to_numpy(dtype=float)
        time = data[formula.time_col].to_numpy(dtype=float)
        status = data[formula.event_col].to_numpy(dtype=float)
        entry = (data[formula.entry_col].to_numpy(dtype=float)
                 if formula.left_truncated else None)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"All columns must be numeric: {exc}") from exc

    if not np.isin(status, (0.0, 1.0)).all():
        raise ConfigurationError(
            f"Event column '{formula.event_col}' must be coded 0 (censored) / "
            f"1 (event); found {sorted(set(np.unique(status)) - {0.0, 1.0})}."
        )
    event = status.astype(bool)

    if entry is not None and np.any(entry >= time):
        raise ConfigurationError(
            f"Entry time '{formula.entry_col}' must be strictly before "
            f"exit time '{formula.time_col}' for every patient."
        )

    log.info(f"Data check performed: {X.shape[0]} patients, {X.shape[1]} features, "
             f"{int(event.sum())} events, response {formula}")
    return SurvivalData(
        X=X,
        response=SurvivalResponse(time=time, event=event, entry=entry),
        features=tuple(features),
        patients=tuple(patients),
        formula=formula,
    )


def check_unpenalized(features: Sequence[str],
                      unpenalized: Sequence[str] | None) -> tuple[str, ...]:
    """Validate the names of features exempt from penalization."""
    if not unpenalized:
        return ()
    unknown = [c for c in unpenalized if c not in features]
    if unknown:
        raise ConfigurationError(f"Unpenalized column(s) not among the features: {unknown}")
    if len(set(unpenalized)) == len(features):
        raise ConfigurationError("At least one feature must remain penalized.")
    return tuple(unpenalized)
