import numpy as np
import pandas as pd
import pytest

# gene_id: (baseMean, log2FoldChange, padj)
DE_RESULTS = {
    "g1": (250.0, 2.5, 0.001),
    "g2": (800.0, -3.0, 0.0001),
    "g3": (40.0, 0.5, 0.01),
    "g4": (120.0, -0.2, 0.5),
    "g5": (3.0, 1.5, np.nan),
    "g6": (60.0, 0.1, 0.9),
    "g7": (15.0, 4.0, 0.02),
    "g8": (500.0, -1.2, 0.04),
    "g9": (90.0, 0.3, 0.3),
    "g10": (75.0, -0.4, 0.6),
    "g11": (30.0, 0.2, 0.7),
    "g12": (10.0, -0.1, 0.8),
}
SAMPLES = [f"{c}_{r}" for c in ("control", "treated") for r in (1, 2, 3)]


@pytest.fixture
def de_df() -> pd.DataFrame:
    de_df = pd.DataFrame.from_dict(
        DE_RESULTS, orient="index", columns=["baseMean", "log2FoldChange", "padj"]
    )
    de_df["lfcSE"] = 0.3
    de_df["pvalue"] = de_df["padj"] / 2
    de_df.index.name = "gene_id"
    return de_df[["baseMean", "log2FoldChange", "lfcSE", "pvalue", "padj"]]


@pytest.fixture
def families_df() -> pd.DataFrame:
    return pd.DataFrame(
        [
            ("g1", "MYB"),
            ("g7", "MYB"),
            ("g9", "MYB"),
            ("g2", "WRKY"),
            ("g8", "WRKY"),
            ("g1", "bHLH"),
            ("g4", "bHLH"),
            ("g10", "bHLH"),
            ("g5", "NAC"),
            ("g99", "NAC"),
        ],
        columns=["gene_id", "family"],
    )


@pytest.fixture
def counts_df() -> pd.DataFrame:
    rng = np.random.default_rng(8080)
    lam = np.linspace(20, 400, len(DE_RESULTS))
    counts = rng.poisson(lam[:, None], size=(len(DE_RESULTS), len(SAMPLES)))
    # make the treated samples different for the first genes
    counts[:4, 3:] *= 4
    return pd.DataFrame(
        counts,
        index=pd.Index(list(DE_RESULTS), name="gene_id"),
        columns=SAMPLES,
    )


@pytest.fixture
def annot_df() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "condition": [s.split("_")[0] for s in SAMPLES],
            "replicate": [s.split("_")[1] for s in SAMPLES],
        },
        index=pd.Index(SAMPLES, name="sample"),
    )
