import numpy as np
import pytest

from oncocast import EnsembleResult, OncoCastError, artifact_name


def test_coefficient_matrix_marks_unselected(toy_ensemble):
    coefs = toy_ensemble.coefficient_matrix()
    assert list(coefs.index) == [1, 2]
    assert list(coefs.columns) == ["A", "B", "C"]
    assert coefs.loc[1, "A"] == 1.0
    assert np.isnan(coefs.loc[1, "B"])
    assert coefs["C"].isna().all()


def test_prediction_matrix_and_average(toy_ensemble):
    preds = toy_ensemble.prediction_matrix()
    assert preds.shape == (4, 2)
    assert np.isnan(preds.loc["P1", 2])

    avg = toy_ensemble.average_risk()
    assert avg.to_dict() == {"P1": -0.5, "P2": 0.5, "P3": -1.0, "P4": 1.0}


def test_concordances(toy_ensemble):
    assert toy_ensemble.concordances().tolist() == [0.7, 0.6]


def test_json_round_trip(toy_ensemble, tmp_path):
    path = toy_ensemble.dump(tmp_path / "nested" / artifact_name("Lung", "cv", "LASSO"))
    assert path.name == "Lung_cv_LASSO.json"
    loaded = EnsembleResult.load(path)
    assert loaded == toy_ensemble
    assert loaded[0].coefficients["B"] is None
    assert loaded[1].selected == {"B": 2.0}


def test_empty_ensemble_is_flagged():
    empty = EnsembleResult(method="RIDGE", sampling="boot", features=("A",),
                           patients=("P1",), requested_runs=5)
    assert len(empty) == 0
    with pytest.raises(OncoCastError, match="0 of 5"):
        empty.check_not_empty()
