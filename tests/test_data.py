import numpy as np
import pytest

from oncocast import ConfigurationError, SurvivalFormula, prepare_data
from oncocast.data import check_unpenalized

from conftest import FORMULA, LT_FORMULA


@pytest.mark.parametrize("text, columns", [
    ("Surv(time,status)~.", ("time", "status")),
    ("Surv(time, status) ~ .", ("time", "status")),
    ("Surv( time1 , time2 , status ) ~ Gene1 + Gene2", ("time1", "time2", "status")),
])
def test_formula_parsing(text, columns):
    assert SurvivalFormula.parse(text).columns == columns


def test_formula_from_column_names():
    f = SurvivalFormula.parse(["t0", "t1", "dead"])
    assert f.left_truncated
    assert (f.entry_col, f.time_col, f.event_col) == ("t0", "t1", "dead")


@pytest.mark.parametrize("bad", [
    "Surv(time) ~ .",
    "Surv(a, b, c, d) ~ .",
    "time ~ .",
    ["time"],
])
def test_bad_response_arity(bad):
    with pytest.raises(ConfigurationError):
        SurvivalFormula.parse(bad)


def test_prepare_right_censored(cohort):
    data = prepare_data(cohort, FORMULA)
    assert data.features == ("Gene1", "Gene2", "Gene3", "Gene4", "Gene5")
    assert data.X.shape == (30, 5)
    assert data.patients[0] == "P1"
    assert not data.response.left_truncated
    assert data.response.event.dtype == bool
    structured = data.response.to_structured()
    assert structured.dtype.names == ("event", "time")


def test_prepare_left_truncated(lt_cohort):
    data = prepare_data(lt_cohort, LT_FORMULA)
    assert data.response.left_truncated
    assert np.all(data.response.entry < data.response.time)
    assert "time1" not in data.features


def test_missing_data_rejected(cohort):
    cohort["Gene3"] = cohort["Gene3"].astype(float)
    cohort.loc["P4", "Gene3"] = np.nan
    with pytest.raises(ConfigurationError, match="Missing data"):
        prepare_data(cohort, FORMULA)


def test_missing_response_column(cohort):
    with pytest.raises(ConfigurationError):
        prepare_data(cohort, "Surv(os_months, status) ~ .")


def test_non_numeric_feature(cohort):
    cohort["Gene1"] = "mut"
    with pytest.raises(ConfigurationError):
        prepare_data(cohort, FORMULA)


def test_entry_after_exit_rejected(lt_cohort):
    lt_cohort.iloc[0, 0] = lt_cohort.iloc[0, 1] + 1
    with pytest.raises(ConfigurationError):
        prepare_data(lt_cohort, LT_FORMULA)


def test_unpenalized_names_checked():
    features = ("A", "B", "C")
    assert check_unpenalized(features, None) == ()
    assert check_unpenalized(features, ["B"]) == ("B",)
    with pytest.raises(ConfigurationError):
        check_unpenalized(features, ["Z"])
    with pytest.raises(ConfigurationError):
        check_unpenalized(features, ["A", "B", "C"])


def test_status_must_be_zero_one(cohort):
    cohort["status"] = cohort["status"] + 1
    with pytest.raises(ConfigurationError, match="coded 0"):
        prepare_data(cohort, FORMULA)
