import logging

import numpy as np
import pytest

import oncocast.pipeline as pipeline
from oncocast import (
    ConfigurationError, EnsembleResult, Penalty, oncocast, prepare_data, resample,
    run_ensemble, run_single,
)
from oncocast.penalized import LifelinesSolver, solver_for
from oncocast.refit import FixedCoxModel, concordance

from conftest import FORMULA, LT_FORMULA, make_cohort


def test_lasso_ensemble_shape(lasso_ensemble):
    assert 1 <= len(lasso_ensemble) <= 10
    assert lasso_ensemble.method == "LASSO"
    assert lasso_ensemble.requested_runs == 10

    runs = [r.run for r in lasso_ensemble]
    assert runs == sorted(runs)
    for r in lasso_ensemble:
        assert set(r.coefficients) == {f"Gene{j}" for j in range(1, 6)}
        assert r.selected
        assert 0.0 <= r.concordance <= 1.0
        assert sum(v is not None for v in r.predicted.values()) == 10
        assert set(r.means) == set(r.selected)


def test_predictions_only_for_test_patients(lasso_ensemble):
    for r in lasso_ensemble:
        split = resample(30, r.run, "cv")
        tested = {f"P{i + 1}" for i in split.test}
        assert {p for p, v in r.predicted.items() if v is not None} == tested


def test_run_is_reproducible():
    data = prepare_data(make_cohort(n=40, seed=5), FORMULA)
    a = run_single(data, Penalty.LASSO, run=3)
    b = run_single(data, Penalty.LASSO, run=3)
    assert a is not None
    assert a == b


def test_bootstrap_predicts_out_of_bag_patients():
    data = prepare_data(make_cohort(n=40, seed=5), FORMULA)
    ensemble = run_ensemble(data, "LASSO", runs=3, sampling="boot")
    assert ensemble.sampling == "boot"
    for r in ensemble:
        oob = resample(40, r.run, "boot").test
        assert sum(v is not None for v in r.predicted.values()) == len(oob)
        assert 0.0 <= r.concordance <= 1.0


def test_ridge_and_enet(cohort):
    out = oncocast(cohort, FORMULA, method=["RIDGE", "ENET"], runs=2, save=False)
    assert set(out) == {"RIDGE", "ENET"}
    for r in out["ENET"]:
        assert r.lambda2 > 0
    for r in out["RIDGE"]:
        assert r.lambda2 is None


def test_left_truncated_ensemble(lt_cohort):
    assert isinstance(solver_for(prepare_data(lt_cohort, LT_FORMULA).response),
                      LifelinesSolver)
    out = oncocast(lt_cohort, LT_FORMULA, method="LASSO", runs=2, save=False)
    ensemble = out["LASSO"]
    assert 1 <= len(ensemble) <= 2
    assert "time1" not in ensemble.features
    for r in ensemble:
        assert 0.0 <= r.concordance <= 1.0


def test_failed_run_is_isolated(cohort, monkeypatch):
    real = pipeline.fit_penalized

    def flaky(X, y, penalty, unpenalized=(), seed=0, **kw):
        if seed == 2:
            raise RuntimeError("solver blew up")
        return real(X, y, penalty, unpenalized, seed=seed, **kw)

    monkeypatch.setattr(pipeline, "fit_penalized", flaky)
    data = prepare_data(cohort, FORMULA)
    ensemble = run_ensemble(data, "LASSO", runs=3)
    assert 2 not in [r.run for r in ensemble]
    assert ensemble.requested_runs == 3


def test_no_signal_run_is_dropped(cohort):
    cohort["status"] = 0
    data = prepare_data(cohort, FORMULA)
    assert run_single(data, Penalty.LASSO, run=1) is None
    assert len(run_ensemble(data, "LASSO", runs=2)) == 0


def test_ensemble_saved_and_reloaded(cohort, tmp_path):
    out = oncocast(cohort, FORMULA, method="LASSO", runs=2,
                   path_results=tmp_path, study_type="Study", save=True)
    path = tmp_path / "Study_cv_LASSO.json"
    assert path.exists()
    assert EnsembleResult.load(path) == out["LASSO"]


@pytest.mark.parametrize("kwargs", [
    {"method": ["LASSO", "BOGUS"]},
    {"sampling": "jackknife"},
    {"runs": 0},
    {"unpenalized": ["NotAGene"]},
])
def test_configuration_checked_before_any_run(cohort, monkeypatch, kwargs):
    def never(*args, **kw):
        raise AssertionError("a run started")

    monkeypatch.setattr(pipeline, "run_ensemble", never)
    with pytest.raises(ConfigurationError):
        oncocast(cohort, FORMULA, save=False, **kwargs)


def test_missing_data_checked_before_any_run(cohort, monkeypatch):
    monkeypatch.setattr(pipeline, "run_ensemble",
                        lambda *a, **kw: pytest.fail("a run started"))
    cohort["Gene2"] = cohort["Gene2"].astype(float)
    cohort.iloc[3, 3] = np.nan
    with pytest.raises(ConfigurationError):
        oncocast(cohort, FORMULA, save=False)


def test_few_runs_warns(cohort, caplog):
    with caplog.at_level(logging.WARNING, logger="oncocast.pipeline"):
        oncocast(cohort, FORMULA, method="LASSO", runs=2, save=False)
    assert any("do not recommend" in rec.message for rec in caplog.records)


@pytest.fixture
def driver_model(cohort):
    data = prepare_data(cohort, FORMULA)
    X = data.X[:, :1]
    model = FixedCoxModel.fit(X, data.response, np.array([1.0]), ["Gene1"])
    return model, X, data.response


def test_empty_out_of_bag_falls_back_to_training_concordance(driver_model):
    model, X, y = driver_model
    score = pipeline.score_run(model, X, y, X[:0], y.subset(np.arange(0)), "boot", 1)
    assert score == pytest.approx(concordance(y, model.linear_predictor(X)))


def test_bootstrap_blends_out_of_bag_and_training(driver_model):
    model, X, y = driver_model
    test, train = np.arange(10), np.arange(10, 30)
    score = pipeline.score_run(model, X[train], y.subset(train), X[test], y.subset(test),
                               "boot", 1)
    expected = (0.632 * concordance(y.subset(test), model.linear_predictor(X[test]))
                + 0.368 * concordance(y.subset(train), model.linear_predictor(X[train])))
    assert score == pytest.approx(expected)


def test_empty_cv_test_set_discards_run(driver_model):
    model, X, y = driver_model
    assert pipeline.score_run(model, X, y, X[:0], y.subset(np.arange(0)), "cv", 1) is None


def test_tiny_cohort_gives_null_run():
    data = prepare_data(make_cohort(n=6, seed=2), FORMULA)
    assert run_single(data, Penalty.LASSO, run=1) is None


def test_generous_timeout_keeps_every_run(cohort):
    data = prepare_data(cohort, FORMULA)
    plain = run_ensemble(data, "LASSO", runs=2)
    timed = run_ensemble(data, "LASSO", runs=2, cores=2, timeout=600)
    assert timed == plain
