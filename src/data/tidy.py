"""
Tidy data verbs for differential expression, count and TF family tables.

Each function takes a dataframe and returns a new one, so that they can be chained
the same way select/filter/mutate/pivot/group_by/summarize/left_join are chained in
tidy data workflows. Inputs follow the conventions of ``data.io``:

- Differential expression results indexed by ``gene_id`` with ``baseMean``,
  ``log2FoldChange``, ``pvalue`` and ``padj`` columns.
- Counts matrices indexed by ``gene_id`` with one column per sample.
- Long counts with ``gene_id``, ``sample``, ``count`` and sample annotation columns.
- TF family membership with ``gene_id`` and ``family`` columns.
"""

from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd

LFC_LEVELS = ("all", "up", "down")


def select_columns(
    df: pd.DataFrame,
    columns: Optional[Iterable[str]] = None,
    starts_with: Optional[str] = None,
    ends_with: Optional[str] = None,
    contains: Optional[str] = None,
    exclude: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Select columns by name and/or name patterns.

    Columns are returned in order of first match: explicit names first, then pattern
    matches in their original order.

    Args:
        df: Input dataframe.
        columns: Explicit column names to keep.
        starts_with: Keep columns whose name starts with this prefix.
        ends_with: Keep columns whose name ends with this suffix.
        contains: Keep columns whose name contains this string.
        exclude: Columns to drop from the selection.

    Returns:
        pd.DataFrame: Dataframe with the selected columns.

    Raises:
        KeyError: If an explicit column is not in the dataframe.
    """
    columns = list(columns or [])
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")

    selected = list(dict.fromkeys(columns))
    for c in df.columns:
        name = str(c)
        if (
            (starts_with is not None and name.startswith(starts_with))
            or (ends_with is not None and name.endswith(ends_with))
            or (contains is not None and contains in name)
        ) and c not in selected:
            selected.append(c)

    # no selector means all columns
    if not columns and starts_with is None and ends_with is None and contains is None:
        selected = list(df.columns)

    exclude = set(exclude or [])
    return df.loc[:, [c for c in selected if c not in exclude]]


def filter_de_results(
    de_df: pd.DataFrame,
    p_col: str = "padj",
    p_th: float = 0.05,
    lfc_level: str = "all",
    lfc_th: float = 0.0,
) -> pd.DataFrame:
    """
    Filter differential expression results according to statistics metrics.

    Args:
        de_df: Differential expression results.
        p_col: By which column to filter, usually "pvalue" or "padj".
        p_th: Significance threshold, genes with ``p_col < p_th`` are kept.
        lfc_level: Genes to keep, "up" for up-regulated, "down" for
            down-regulated, and "all" for all.
        lfc_th: LFC threshold, genes with ``|log2FoldChange| > lfc_th`` are kept.

    Returns:
        pd.DataFrame: Significant genes. Genes with missing statistics never pass.
    """
    if lfc_level not in LFC_LEVELS:
        raise ValueError(f"{lfc_level} is not a valid option, choose one of {LFC_LEVELS}.")

    # 1. Filter by LFC level
    if lfc_level == "up":
        de_df = de_df[de_df["log2FoldChange"] > 0]
    elif lfc_level == "down":
        de_df = de_df[de_df["log2FoldChange"] < 0]

    # 2. Filter by LFC and significance thresholds
    return de_df[(de_df["log2FoldChange"].abs() > lfc_th) & (de_df[p_col] < p_th)]


def add_de_columns(
    de_df: pd.DataFrame,
    p_col: str = "padj",
    p_th: float = 0.05,
    lfc_level: str = "all",
    lfc_th: float = 0.0,
) -> pd.DataFrame:
    """Add significance columns to differential expression results.

    New columns:
        - ``neg_log10_p``: -log10 of ``p_col`` (missing values are kept).
        - ``significant``: whether the gene passes ``filter_de_results`` with the
          same arguments.
        - ``regulation``: "up", "down" or "ns" (not significant).
    """
    de_df = de_df.copy()
    with np.errstate(divide="ignore"):
        de_df["neg_log10_p"] = -np.log10(de_df[p_col].astype(float))

    de_df["significant"] = de_df.index.isin(
        filter_de_results(
            de_df, p_col=p_col, p_th=p_th, lfc_level=lfc_level, lfc_th=lfc_th
        ).index
    )
    de_df["regulation"] = np.select(
        [
            de_df["significant"] & (de_df["log2FoldChange"] > 0),
            de_df["significant"] & (de_df["log2FoldChange"] < 0),
        ],
        ["up", "down"],
        default="ns",
    )

    return de_df


def counts_to_long(
    counts_df: pd.DataFrame, annot_df: Optional[pd.DataFrame] = None
) -> pd.DataFrame:
    """Pivot a counts matrix to long format (one row per gene and sample).

    Args:
        counts_df: Counts indexed by ``gene_id``, one column per sample.
        annot_df: Optional sample annotation indexed by ``sample``, its columns are
            joined to each row.

    Returns:
        pd.DataFrame: Columns ``gene_id``, ``sample``, ``count`` and annotation columns.
    """
    counts_long_df = (
        counts_df.rename_axis(index="gene_id", columns="sample")
        .reset_index()
        .melt(id_vars="gene_id", var_name="sample", value_name="count")
    )

    if annot_df is not None:
        counts_long_df = counts_long_df.merge(
            annot_df.rename_axis("sample").reset_index(), on="sample", how="left"
        )

    return counts_long_df


def long_to_wide(
    counts_long_df: pd.DataFrame,
    columns: str = "sample",
    values: str = "count",
    aggfunc: str = "mean",
) -> pd.DataFrame:
    """Pivot long counts back to a gene x ``columns`` matrix.

    With ``columns="sample"`` the original counts matrix is recovered, with
    ``columns="condition"`` values are aggregated per condition using ``aggfunc``.
    """
    wide_df = counts_long_df.pivot_table(
        index="gene_id", columns=columns, values=values, aggfunc=aggfunc, sort=False
    )
    wide_df.columns.name = None

    return wide_df


def normalize_counts(
    counts_df: pd.DataFrame,
    method: str = "cpm",
    log: bool = False,
    pseudocount: float = 1,
) -> pd.DataFrame:
    """Normalize raw counts by library size.

    Args:
        counts_df: Raw counts, genes as rows and samples as columns.
        method: Normalization method, only "cpm" (counts per million) is available.
        log: Whether to return log2(normalized + pseudocount).
        pseudocount: Value added before the log transform.

    Returns:
        pd.DataFrame: Normalized counts. Samples with an empty library are all NaN.
    """
    if method != "cpm":
        raise ValueError(f"{method} is not a valid normalization method.")

    lib_sizes = counts_df.sum(axis=0).replace(0, np.nan)
    norm_df = counts_df.div(lib_sizes, axis=1) * 1e6

    return np.log2(norm_df + pseudocount) if log else norm_df


def summarize_samples(counts_long_df: pd.DataFrame) -> pd.DataFrame:
    """Per sample library size, number of detected genes and median count."""
    return (
        counts_long_df.groupby("sample", sort=False)["count"]
        .agg(
            library_size="sum",
            detected_genes=lambda x: int((x > 0).sum()),
            median_count="median",
        )
        .reset_index()
    )


def summarize_counts(
    counts_long_df: pd.DataFrame,
    by: Union[str, Iterable[str]] = ("gene_id", "condition"),
    values: str = "count",
) -> pd.DataFrame:
    """Group long counts and summarize them with mean, median, std and size.

    Args:
        counts_long_df: Long counts.
        by: Grouping column(s).
        values: Column to summarize.

    Returns:
        pd.DataFrame: One row per group.
    """
    by = [by] if isinstance(by, str) else list(by)
    return (
        counts_long_df.groupby(by, sort=True)[values]
        .agg(mean="mean", median="median", std="std", n="count")
        .reset_index()
    )


def join_de_families(de_df: pd.DataFrame, families_df: pd.DataFrame) -> pd.DataFrame:
    """Left join differential expression results with TF family membership.

    All genes are kept, a gene belonging to several families appears once per family.
    Genes without family get a missing ``family`` and ``is_tf`` set to False.
    """
    de_families_df = (
        de_df.rename_axis("gene_id")
        .reset_index()
        .merge(families_df[["gene_id", "family"]], on="gene_id", how="left")
    )
    de_families_df["is_tf"] = de_families_df["family"].notna()

    return de_families_df


def summarize_families(de_families_df: pd.DataFrame) -> pd.DataFrame:
    """Summarize differential expression per TF family.

    Args:
        de_families_df: Output of ``join_de_families`` on results annotated with
            ``add_de_columns``.

    Returns:
        pd.DataFrame: One row per family with number of genes, number of significant,
            up- and down-regulated genes, fraction of significant genes and mean LFC.
            Sorted by number of significant genes (descending) and family name.
    """
    assert {"significant", "regulation"}.issubset(de_families_df.columns), (
        "Differential expression results must be annotated with add_de_columns first."
    )

    tf_df = de_families_df[de_families_df["is_tf"]]
    summary_df = (
        tf_df.groupby("family")
        .agg(
            n_genes=("gene_id", "nunique"),
            n_significant=("significant", "sum"),
            n_up=("regulation", lambda x: int((x == "up").sum())),
            n_down=("regulation", lambda x: int((x == "down").sum())),
            mean_log2FoldChange=("log2FoldChange", "mean"),
        )
        .reset_index()
    )
    summary_df["n_significant"] = summary_df["n_significant"].astype(int)
    summary_df["fraction_significant"] = (
        summary_df["n_significant"] / summary_df["n_genes"]
    )

    return summary_df.sort_values(
        ["n_significant", "family"], ascending=[False, True]
    ).reset_index(drop=True)


def top_genes(
    de_df: pd.DataFrame, n: int = 10, by: str = "padj", ascending: bool = True
) -> pd.DataFrame:
    """Arrange results by a column and keep the first ``n`` rows (missing values last)."""
    return de_df.sort_values(by, ascending=ascending, na_position="last").head(n)
