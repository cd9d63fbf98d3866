import logging
from typing import Dict, Iterable

import numpy as np
import pandas as pd
import scipy.stats as ss

TEST_METHODS = ("fisher", "chi2")
ALTERNATIVES = ("two-sided", "less", "greater")


def contingency_table(
    universe: Iterable[str], selected: Iterable[str], members: Iterable[str]
) -> pd.DataFrame:
    """
    Build the 2x2 contingency table of group membership vs. selection.

    Only genes in the universe are counted, selected genes and group members outside
    of it are ignored.

    Args:
        universe: All genes that could have been selected (e.g. all tested genes).
        selected: Selected genes (e.g. differentially expressed genes).
        members: Genes belonging to the group of interest (e.g. a TF family).

    Returns:
        pd.DataFrame: Counts with rows "in_group"/"not_in_group" and columns
            "selected"/"not_selected".
    """
    universe = set(universe)
    selected = set(selected) & universe
    members = set(members) & universe

    in_sel = len(selected & members)
    in_not_sel = len(members - selected)
    out_sel = len(selected - members)
    out_not_sel = len(universe) - in_sel - in_not_sel - out_sel

    return pd.DataFrame(
        [[in_sel, in_not_sel], [out_sel, out_not_sel]],
        index=["in_group", "not_in_group"],
        columns=["selected", "not_selected"],
    )


def odds_ratio(table: pd.DataFrame) -> float:
    """Sample odds ratio (a * d) / (b * c) of a 2x2 table, NaN when undefined."""
    (a, b), (c, d) = table.to_numpy()
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.divide(float(a) * d, float(b) * c))


def contingency_test(
    table: pd.DataFrame, method: str = "fisher", alternative: str = "greater"
) -> Dict[str, float]:
    """
    Test the association between group membership and selection.

    Args:
        table: 2x2 contingency table, see ``contingency_table``.
        method: "fisher" for Fisher's exact test or "chi2" for Pearson's chi-square
            test with Yates' continuity correction.
        alternative: Alternative hypothesis of Fisher's exact test. "greater" tests
            for over-representation of selected genes in the group. The chi-square
            test is always two-sided.

    Returns:
        Dict[str, float]: "odds_ratio", "statistic" (the odds ratio for Fisher's
            test, the chi-square statistic otherwise) and "p_value".

    Raises:
        ValueError: If the method or alternative are not valid options.
    """
    if method not in TEST_METHODS:
        raise ValueError(f"{method} is not a valid option, choose one of {TEST_METHODS}.")
    if alternative not in ALTERNATIVES:
        raise ValueError(
            f"{alternative} is not a valid option, choose one of {ALTERNATIVES}."
        )

    observed = table.to_numpy()
    if method == "fisher":
        statistic, p_value = ss.fisher_exact(observed, alternative=alternative)
    else:
        try:
            statistic, p_value, _, _ = ss.chi2_contingency(observed, correction=True)
        except ValueError as e:
            # raised when an expected frequency is zero
            logging.warning(f"Chi-square test could not be computed: {e}")
            statistic, p_value = np.nan, np.nan

    return {
        "odds_ratio": odds_ratio(table),
        "statistic": float(statistic),
        "p_value": float(p_value),
    }
