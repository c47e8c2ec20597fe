"""
OncoCast: repeated penalized Cox regression over resampled splits of a
survival dataset, ensemble risk scores and risk projection for new patients.
"""

from .data import SurvivalData, SurvivalFormula, SurvivalResponse, prepare_data
from .errors import ConfigurationError, NoOverlappingFeaturesError, OncoCastError
from .penalized import Penalty, fit_penalized
from .pipeline import oncocast, run_ensemble, run_single
from .predict import IncomingPrediction, predict_incoming, survival_curves
from .resampling import Split, resample
from .results import EnsembleResult, RunResult, artifact_name
from .summary import (
    RiskRefit, RiskStrata, concordance_summary, refit_risk, rescale_risk,
    selection_summary, stratify_risk,
)

__all__ = [
    "ConfigurationError", "EnsembleResult", "IncomingPrediction",
    "NoOverlappingFeaturesError", "OncoCastError", "Penalty", "RiskRefit",
    "RiskStrata", "RunResult", "Split", "SurvivalData", "SurvivalFormula",
    "SurvivalResponse", "artifact_name", "concordance_summary", "fit_penalized",
    "oncocast", "predict_incoming", "prepare_data", "refit_risk", "resample",
    "rescale_risk", "run_ensemble", "run_single", "selection_summary",
    "stratify_risk", "survival_curves",
]

__version__ = "0.1.0"
