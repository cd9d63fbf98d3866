import json

import numpy as np
import pandas as pd
import pytest

from components.np_encoder import NpEncoder
from components.thresholds import DEThresholds


def test_default_thresholds():
    thresholds = DEThresholds()

    assert thresholds.key == "padj_0_05_all_0_0"
    assert thresholds.as_dict() == {
        "p_col": "padj",
        "p_th": 0.05,
        "lfc_level": "all",
        "lfc_th": 0.0,
    }


def test_thresholds_key():
    assert DEThresholds("pvalue", 0.01, "up", 1.5).key == "pvalue_0_01_up_1_5"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"p_col": "qvalue"},
        {"p_th": 0.0},
        {"p_th": 1.5},
        {"lfc_level": "both"},
        {"lfc_th": -1.0},
    ],
)
def test_invalid_thresholds(kwargs):
    with pytest.raises(ValueError):
        DEThresholds(**kwargs)


def test_np_encoder():
    summary = {
        "n": np.int64(3),
        "p_value": np.float64(0.01),
        "significant": np.bool_(True),
        "odds_ratio": np.inf,
        "values": np.array([1.0, np.nan]),
        "missing": pd.NA,
        "counts": pd.Series({"g1": 2}),
    }

    encoded = json.loads(json.dumps(summary, cls=NpEncoder))

    assert encoded == {
        "n": 3,
        "p_value": 0.01,
        "significant": True,
        "odds_ratio": None,
        "values": [1.0, None],
        "missing": None,
        "counts": {"g1": 2},
    }


def test_np_encoder_dataframe():
    df = pd.DataFrame({"family": ["MYB"], "p_value": [np.nan]})

    assert json.loads(json.dumps(df, cls=NpEncoder)) == [
        {"family": "MYB", "p_value": None}
    ]
