import json
import logging
from dataclasses import field
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from pydantic.dataclasses import dataclass
from statsmodels.stats.multitest import multipletests

from components.np_encoder import NpEncoder
from components.tf_enrichment.utils import contingency_table, contingency_test
from components.thresholds import Config, DEThresholds
from data.tidy import filter_de_results
from data.visualization import enrichment_barplot, enrichment_dotplot

RESULT_COLS = [
    "family",
    "family_size",
    "selected_in_family",
    "selected_total",
    "universe_size",
    "expected",
    "fold_enrichment",
    "odds_ratio",
    "statistic",
    "p_value",
    "p_value_adj",
]


def adjust_p_values(p_values: pd.Series, method: str = "fdr_bh") -> pd.Series:
    """Multiple testing correction ignoring missing p-values."""
    p_adj = pd.Series(np.nan, index=p_values.index, dtype=float)
    mask = p_values.notna()
    if mask.any():
        p_adj[mask] = multipletests(p_values[mask], method=method)[1]
    return p_adj


@dataclass(config=Config)
class FamilyEnrichment:
    """
    Over-representation analysis of transcription factor families among
    differentially expressed genes.

    For each family, a 2x2 contingency table (family membership vs. differential
    expression) is built over the universe of tested genes, that is, genes with a
    non-missing ``p_col`` value, and tested with Fisher's exact test or Pearson's
    chi-square test. P-values are corrected with Benjamini-Hochberg. An additional
    global test compares TF genes (any family) against all other genes.

    Args:
        de_df: Differential expression results indexed by gene ID.
        families_df: TF family membership with "gene_id" and "family" columns.
        thresholds: Thresholds used to select differentially expressed genes.
        method: "fisher" or "chi2".
        alternative: Alternative hypothesis of Fisher's exact test.
        min_family_size: Families with fewer members in the universe are skipped.
        files_prefix: Path prefix for all generated data files.
        plots_prefix: Path prefix for all generated plot files.
        plots_format: Extension of generated plots (e.g. "pdf" or "html").

    Attributes:
        result_df: One row per tested family, sorted by p-value.
        global_result: Test result of TF genes vs. non-TF genes.
    """

    de_df: pd.DataFrame
    families_df: pd.DataFrame
    thresholds: DEThresholds = field(default_factory=DEThresholds)
    method: str = "fisher"
    alternative: str = "greater"
    min_family_size: int = 1
    files_prefix: Path = Path("tf_families")
    plots_prefix: Path = Path("tf_families")
    plots_format: str = "pdf"

    def __post_init__(self) -> None:
        # 0. Universe and selected genes
        p_col = self.thresholds.p_col
        universe_df = self.de_df[self.de_df[p_col].notna()]
        self.universe = set(universe_df.index)
        self.selected = set(
            filter_de_results(universe_df, **self.thresholds.as_dict()).index
        )
        families_df = self.families_df[self.families_df["gene_id"].isin(self.universe)]

        # 1. Test each family
        records = []
        for family, family_genes in families_df.groupby("family")["gene_id"]:
            members = set(family_genes)
            if len(members) < self.min_family_size:
                continue
            records.append({"family": family, **self._test(members)})

        self.result_df = pd.DataFrame(records, columns=RESULT_COLS[:-1])
        self.result_df["p_value_adj"] = adjust_p_values(self.result_df["p_value"])
        self.result_df = self.result_df.sort_values(
            ["p_value", "family"], na_position="last"
        ).reset_index(drop=True)

        # 2. All TFs vs. the rest
        self.global_result = {
            "family": "all_tf",
            **self._test(set(families_df["gene_id"])),
        }

        # 3. Create paths
        self.files_prefix.parent.mkdir(exist_ok=True, parents=True)
        self.plots_prefix.parent.mkdir(exist_ok=True, parents=True)

    def _test(self, members: set) -> Dict[str, Any]:
        """Contingency table statistics of a set of genes."""
        table = contingency_table(self.universe, self.selected, members)
        family_size = int(table.loc["in_group"].sum())
        selected_in_family = int(table.loc["in_group", "selected"])
        universe_size = len(self.universe)
        expected = (
            family_size * len(self.selected) / universe_size if universe_size else 0.0
        )

        return {
            "family_size": family_size,
            "selected_in_family": selected_in_family,
            "selected_total": len(self.selected),
            "universe_size": universe_size,
            "expected": expected,
            "fold_enrichment": selected_in_family / expected if expected else np.nan,
            **contingency_test(table, method=self.method, alternative=self.alternative),
        }

    @property
    def is_empty(self) -> bool:
        return self.result_df is None or self.result_df.empty

    def significant(self, p_th: float = 0.05) -> pd.DataFrame:
        """Families with adjusted p-value below ``p_th``."""
        return self.result_df[self.result_df["p_value_adj"] < p_th]

    def save_csv(self) -> None:
        """
        Save enrichment results as CSV file.

        The file will be saved with the path specified by files_prefix with .csv extension.
        """
        if not self.is_empty:
            self.result_df.to_csv(Path(f"{self.files_prefix}.csv"), index=False)
        else:
            logging.warning(
                f"[{self.files_prefix.name}] Could not save CSV. "
                "Enrichment result is empty."
            )

    def save_json(self) -> None:
        """Save the global test result and analysis parameters as JSON."""
        if self.is_empty:
            logging.warning(
                f"[{self.files_prefix.name}] Could not save JSON. "
                "Enrichment result is empty."
            )
            return

        summary = {
            "method": self.method,
            "alternative": self.alternative,
            "min_family_size": self.min_family_size,
            "thresholds": self.thresholds.as_dict(),
            "n_families_tested": len(self.result_df),
            "global": self.global_result,
        }
        with Path(f"{self.files_prefix}.json").open("w") as fp:
            json.dump(summary, fp, cls=NpEncoder, indent=True)

    def save_all(self) -> None:
        self.save_csv()
        self.save_json()

    def barplot(self, top_n: Optional[int] = 20, **kwargs: Any) -> None:
        """
        Create a bar plot of -log10 adjusted p-values of the top families,
        color-coded by fold enrichment.
        """
        if not self.is_empty:
            save_path = Path(f"{self.plots_prefix}_barplot.{self.plots_format}")
            enrichment_barplot(self.result_df, save_path, top_n=top_n, **kwargs)
        else:
            logging.warning(
                f"[{self.plots_prefix.name}] Could not plot barplot. "
                "Enrichment result is empty."
            )

    def dotplot(self, top_n: Optional[int] = 20, **kwargs: Any) -> None:
        """
        Create a dot plot of fold enrichment per family, with the number of
        differentially expressed members as dot size.
        """
        if not self.is_empty:
            save_path = Path(f"{self.plots_prefix}_dotplot.{self.plots_format}")
            enrichment_dotplot(self.result_df, save_path, top_n=top_n, **kwargs)
        else:
            logging.warning(
                f"[{self.plots_prefix.name}] Could not plot dotplot. "
                "Enrichment result is empty."
            )

    def plot_all(self, **kwargs: Any) -> None:
        self.barplot(**kwargs)
        self.dotplot(**kwargs)
