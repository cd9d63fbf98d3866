"""Visualization utilities for differential expression and count data.

This module provides functions to create and save the exploratory plots of gene
expression tables using Plotly (interactive figures) and Seaborn (clustered heatmaps).
Plotly figures are saved according to the file extension of ``save_path``: .html
files keep the interactivity, while .pdf, .png and .svg files are static exports.
"""

from copy import deepcopy
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import seaborn as sns
from matplotlib import pyplot as plt
from matplotlib.patches import Patch
from sklearn.decomposition import PCA

from data.tidy import add_de_columns, normalize_counts

REGULATION_COLORS: Dict[str, str] = {
    "up": "#8B3A3A",
    "down": "#4A708B",
    "ns": "#BEBEBE",
}
STATIC_FORMATS = (".pdf", ".png", ".svg")


def save_figure(fig: go.Figure, save_path: Path) -> None:
    """Save a plotly figure, image format depends on the file name extension.

    Raises:
        ValueError: If save_path has an extension other than .html, .pdf, .png
            or .svg.
    """
    save_path = Path(save_path)
    save_path.parent.mkdir(exist_ok=True, parents=True)
    if save_path.suffix in STATIC_FORMATS:
        fig.write_image(str(save_path))
    elif save_path.suffix == ".html":
        fig.write_html(str(save_path))
    else:
        raise ValueError(
            f"Save file had suffix {save_path.suffix}, "
            f"but only .html, {', '.join(STATIC_FORMATS)} are possible."
        )


def _de_plot_df(
    de_df: pd.DataFrame,
    p_col: str,
    p_th: float,
    lfc_th: float,
    lfc_level: str = "all",
) -> pd.DataFrame:
    """Differential expression results annotated and ready to be plotted.

    Genes with a missing p-value are removed. Zero p-values (underflow) get the
    largest finite -log10 p-value so that they stay on the plot.
    """
    plot_df = add_de_columns(
        de_df, p_col=p_col, p_th=p_th, lfc_level=lfc_level, lfc_th=lfc_th
    )
    plot_df = plot_df.rename_axis("gene_id").reset_index()
    plot_df = plot_df[plot_df[p_col].notna()].copy()

    finite = np.isfinite(plot_df["neg_log10_p"])
    if not finite.all():
        max_neg_log10_p = (
            plot_df.loc[finite, "neg_log10_p"].max()
            if finite.any()
            else -np.log10(np.finfo(float).tiny)
        )
        plot_df.loc[~finite, "neg_log10_p"] = max_neg_log10_p

    return plot_df


def volcano_plot(
    de_df: pd.DataFrame,
    save_path: Path,
    p_col: str = "padj",
    p_th: float = 0.05,
    lfc_th: float = 0.0,
    lfc_level: str = "all",
    label_top_n: int = 10,
    label_col: Optional[str] = None,
    title: str = "",
) -> go.Figure:
    """Create and save a volcano plot (LFC vs. -log10 p-value).

    Genes are colored by regulation ("up", "down" or "ns") and the ``label_top_n``
    most significant genes are annotated with their ID (or ``label_col``).
    Genes with missing p-values are not shown, genes with a zero p-value are drawn at
    the largest finite -log10 p-value.

    Args:
        de_df: Differential expression results indexed by gene ID.
        save_path: Path where the plot will be saved.
        p_col: Significance column.
        p_th: Significance threshold.
        lfc_th: Absolute LFC threshold.
        lfc_level: Regulation direction called significant, "all", "up" or "down".
        label_top_n: Number of top genes to annotate.
        label_col: Column used as gene label, defaults to the gene ID.
        title: Title for the plot.

    Returns:
        go.Figure: Plotly figure object.
    """
    plot_df = _de_plot_df(de_df, p_col, p_th, lfc_th, lfc_level)
    label_col = label_col or "gene_id"

    fig = px.scatter(
        plot_df,
        x="log2FoldChange",
        y="neg_log10_p",
        color="regulation",
        color_discrete_map=REGULATION_COLORS,
        hover_name=label_col,
        labels={"neg_log10_p": f"-log10({p_col})"},
        title=title,
    )
    fig.add_hline(y=-np.log10(p_th), line_dash="dash", line_color="grey")
    if lfc_th > 0:
        for x in (-lfc_th, lfc_th):
            fig.add_vline(x=x, line_dash="dash", line_color="grey")

    # 1. Label top genes
    top_df = plot_df[plot_df["significant"]].nsmallest(label_top_n, p_col)
    for _, row in top_df.iterrows():
        fig.add_annotation(
            x=row["log2FoldChange"],
            y=row["neg_log10_p"],
            text=str(row[label_col]),
            showarrow=False,
            yshift=10,
        )

    save_figure(fig, save_path)
    return fig


def ma_plot(
    de_df: pd.DataFrame,
    save_path: Path,
    p_col: str = "padj",
    p_th: float = 0.05,
    lfc_th: float = 0.0,
    lfc_level: str = "all",
    title: str = "",
) -> go.Figure:
    """Create and save an MA plot (log10 mean expression vs. LFC).

    Genes with zero mean expression are not shown.
    """
    plot_df = add_de_columns(
        de_df, p_col=p_col, p_th=p_th, lfc_level=lfc_level, lfc_th=lfc_th
    )
    plot_df = plot_df.rename_axis("gene_id").reset_index()
    plot_df = plot_df[plot_df["baseMean"] > 0].copy()
    plot_df["log10_baseMean"] = np.log10(plot_df["baseMean"])

    fig = px.scatter(
        plot_df,
        x="log10_baseMean",
        y="log2FoldChange",
        color="regulation",
        color_discrete_map=REGULATION_COLORS,
        hover_name="gene_id",
        title=title,
    )
    fig.add_hline(y=0, line_color="black")

    save_figure(fig, save_path)
    return fig


def interactive_volcano(
    de_df: pd.DataFrame,
    save_path: Path,
    p_col: str = "padj",
    p_ths: Iterable[float] = (0.1, 0.05, 0.01, 0.001),
    lfc_th: float = 0.0,
    lfc_level: str = "all",
    title: str = "",
) -> go.Figure:
    """Create an interactive volcano plot with a significance threshold slider.

    Each slider step recolors the genes according to a different ``p_th``, so the
    figure reacts to the chosen threshold without any server. The figure is saved as
    a standalone HTML file.

    Args:
        de_df: Differential expression results indexed by gene ID.
        save_path: Path of the .html file.
        p_col: Significance column.
        p_ths: Significance thresholds offered in the slider.
        lfc_th: Absolute LFC threshold.
        lfc_level: Regulation direction called significant, "all", "up" or "down".
        title: Title for the plot.

    Returns:
        go.Figure: Plotly figure object.
    """
    assert Path(save_path).suffix == ".html", "Interactive plots must be saved as .html"
    p_ths = sorted(set(p_ths), reverse=True)
    assert p_ths, "At least one threshold is needed."

    fig = go.Figure()
    steps = []
    n_traces = len(REGULATION_COLORS)
    for i, p_th in enumerate(p_ths):
        plot_df = _de_plot_df(de_df, p_col, p_th, lfc_th, lfc_level)
        for regulation, color in REGULATION_COLORS.items():
            reg_df = plot_df[plot_df["regulation"] == regulation]
            fig.add_trace(
                go.Scattergl(
                    x=reg_df["log2FoldChange"],
                    y=reg_df["neg_log10_p"],
                    text=reg_df["gene_id"],
                    mode="markers",
                    marker=dict(color=color),
                    name=f"{regulation} ({len(reg_df)})",
                    visible=i == 0,
                    hovertemplate="%{text}<br>LFC=%{x:.2f}<br>-log10 p=%{y:.2f}",
                )
            )

        visible = [False] * (n_traces * len(p_ths))
        visible[i * n_traces : (i + 1) * n_traces] = [True] * n_traces
        n_sig = int(plot_df["significant"].sum())
        steps.append(
            dict(
                method="update",
                label=str(p_th),
                args=[
                    {"visible": visible},
                    {"title": f"{title} {p_col} < {p_th}: {n_sig} genes".strip()},
                ],
            )
        )

    fig.update_layout(
        title=steps[0]["args"][1]["title"],
        xaxis_title="log2FoldChange",
        yaxis_title=f"-log10({p_col})",
        sliders=[
            dict(active=0, currentvalue={"prefix": f"{p_col} threshold: "}, steps=steps)
        ],
    )

    save_figure(fig, save_path)
    return fig


def family_barplot(
    summary_df: pd.DataFrame,
    save_path: Path,
    top_n: Optional[int] = 20,
    title: str = "",
) -> go.Figure:
    """Create and save a stacked bar plot of up/down-regulated genes per TF family.

    Args:
        summary_df: Output of ``data.tidy.summarize_families``.
        save_path: Path where the plot will be saved.
        top_n: Number of families to show, ordered as in ``summary_df``.
        title: Title for the plot.
    """
    plot_df = summary_df[["family", "n_up", "n_down"]]
    plot_df = plot_df.head(top_n) if top_n else plot_df
    plot_df = plot_df.melt(
        id_vars="family",
        value_vars=["n_up", "n_down"],
        var_name="regulation",
        value_name="n_genes",
    )
    plot_df["regulation"] = plot_df["regulation"].str.replace("n_", "", regex=False)

    fig = px.bar(
        plot_df,
        x="family",
        y="n_genes",
        color="regulation",
        color_discrete_map=REGULATION_COLORS,
        title=title,
        labels={"n_genes": "Differentially expressed genes"},
    )

    save_figure(fig, save_path)
    return fig


def enrichment_barplot(
    result_df: pd.DataFrame,
    save_path: Path,
    top_n: Optional[int] = 20,
    title: str = "",
) -> go.Figure:
    """Bar plot of -log10 adjusted p-values per family colored by fold enrichment."""
    plot_df = deepcopy(result_df.head(top_n) if top_n else result_df)
    plot_df["neg_log10_p_adj"] = -np.log10(plot_df["p_value_adj"].astype(float))

    fig = px.bar(
        plot_df.sort_values("neg_log10_p_adj"),
        x="neg_log10_p_adj",
        y="family",
        orientation="h",
        color="fold_enrichment",
        color_continuous_scale="Reds",
        title=title,
        labels={"neg_log10_p_adj": "-log10(adjusted p-value)"},
    )

    save_figure(fig, save_path)
    return fig


def enrichment_dotplot(
    result_df: pd.DataFrame,
    save_path: Path,
    top_n: Optional[int] = 20,
    title: str = "",
) -> go.Figure:
    """Dot plot of fold enrichment per family, sized by number of selected genes."""
    plot_df = result_df.head(top_n) if top_n else result_df

    fig = px.scatter(
        plot_df,
        x="fold_enrichment",
        y="family",
        size="selected_in_family",
        color="p_value_adj",
        color_continuous_scale="Viridis_r",
        hover_data=["family_size", "odds_ratio", "p_value"],
        title=title,
    )

    save_figure(fig, save_path)
    return fig


def counts_boxplot(
    counts_long_df: pd.DataFrame,
    save_path: Path,
    log: bool = True,
    color: str = "condition",
    title: str = "",
) -> go.Figure:
    """Create and save box plots of the count distribution of each sample.

    Args:
        counts_long_df: Long counts with "sample", "count" and ``color`` columns.
        save_path: Path where the plot will be saved.
        log: Whether to plot log2(count + 1).
        color: Column used to color samples.
        title: Title for the plot.
    """
    plot_df = deepcopy(counts_long_df)
    y_col = "count"
    if log:
        y_col = "log2_count"
        plot_df[y_col] = np.log2(plot_df["count"] + 1)

    fig = px.box(
        plot_df,
        x="sample",
        y=y_col,
        color=color if color in plot_df.columns else None,
        title=title,
    )

    save_figure(fig, save_path)
    return fig


def sample_pca_plot(
    counts_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    save_path: Path,
    color: str = "condition",
    sample_colors: Optional[Dict[str, str]] = None,
    title: str = "",
) -> go.Figure:
    """Create and save a PCA plot of samples computed on log2 CPM values.

    Genes with missing counts or without variance across samples are removed before
    the PCA.
    """
    # samples with an empty library, then genes with missing counts
    log_cpm = (
        normalize_counts(counts_df, log=True)
        .dropna(axis=1, how="all")
        .dropna(axis=0, how="any")
    )
    log_cpm = log_cpm.loc[log_cpm.var(axis=1) > 0]
    assert log_cpm.shape[0] >= 2 and log_cpm.shape[1] >= 2, (
        "At least two samples and two variable genes are needed for a PCA."
    )

    pca = PCA(n_components=2, random_state=8080)
    components = pca.fit_transform(log_cpm.transpose())
    ratios = pca.explained_variance_ratio_ * 100

    labels = annot_df.loc[log_cpm.columns, color]
    fig = px.scatter(
        components,
        x=0,
        y=1,
        labels={
            "0": f"PC 1 ({ratios[0]:.2f}%)",
            "1": f"PC 2 ({ratios[1]:.2f}%)",
            "color": color,
        },
        color=labels.to_numpy(),
        color_discrete_map=sample_colors,
        hover_name=log_cpm.columns.to_numpy(),
        title=title,
    )

    save_figure(fig, save_path)
    return fig


def expression_heatmap(
    counts_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    save_path: Path,
    genes: Optional[Iterable[str]] = None,
    top_n: int = 50,
    color: str = "condition",
    sample_colors: Optional[Dict[str, str]] = None,
) -> sns.matrix.ClusterGrid:
    """Create and save a clustered heatmap of row-centered log2 CPM values.

    Args:
        counts_df: Raw counts, genes as rows and samples as columns.
        annot_df: Sample annotation indexed by sample.
        save_path: Path where the plot will be saved (any matplotlib format).
        genes: Genes to plot. If None, the ``top_n`` most variable genes are used.
        top_n: Maximum number of genes to plot.
        color: Annotation column used for the sample color bar.
        sample_colors: Mapping of ``color`` values to colors.

    Returns:
        sns.matrix.ClusterGrid: Seaborn cluster grid.
    """
    # samples with an empty library, then genes with missing counts
    log_cpm = (
        normalize_counts(counts_df, log=True)
        .dropna(axis=1, how="all")
        .dropna(axis=0, how="any")
    )
    if genes is not None:
        log_cpm = log_cpm.loc[log_cpm.index.intersection(list(genes))]
    top_var_genes = log_cpm.var(axis=1).sort_values(ascending=False)[:top_n]
    counts_matrix = log_cpm.loc[top_var_genes[top_var_genes > 0].index]
    assert counts_matrix.shape[0] >= 2, "At least two variable genes are needed."
    # subtract row means for better visualization
    counts_matrix = counts_matrix.sub(counts_matrix.mean(axis=1), axis=0)

    conditions = annot_df.loc[counts_matrix.columns, color]
    if sample_colors is None:
        palette = sns.color_palette("Set2", n_colors=conditions.nunique())
        sample_colors = dict(zip(sorted(conditions.unique()), palette))
    col_colors = conditions.map(sample_colors).rename("")

    g = sns.clustermap(
        counts_matrix,
        figsize=(10, 10),
        center=0,
        cmap="vlag",
        col_colors=col_colors,
        yticklabels=counts_matrix.shape[0] <= 50,
        xticklabels=True,
    )

    handles = [Patch(facecolor=sample_colors[name]) for name in sorted(conditions.unique())]
    plt.legend(
        handles,
        sorted(conditions.unique()),
        title=color,
        bbox_transform=plt.gcf().transFigure,
        bbox_to_anchor=(1.15, 0.5),
    )
    Path(save_path).parent.mkdir(exist_ok=True, parents=True)
    plt.savefig(str(save_path), bbox_inches="tight", dpi=300)
    plt.close("all")

    return g


def gene_expression_plot(
    expr_df: pd.DataFrame,
    save_path: Path,
    title: str = "",
    color_discrete_sequence: Optional[List[str]] = None,
    gene_expr_col: str = "gene_expr",
    gene_expr_level: str = "gene_expr_level",
) -> go.Figure:
    """Create and save a bar plot of gene expression values across samples.

    Generates a bar plot showing gene expression values for each sample, with
    bars colored according to expression level categories (low, mid, high).

    Args:
        expr_df: DataFrame containing gene expression values with samples as rows
        save_path: Path where the plot will be saved
        title: Title for the plot
        color_discrete_sequence: List of three colors for low, mid, and high expression
            levels, defaults to ["red", "blue", "green"]
        gene_expr_col: Column name containing expression values
        gene_expr_level: Column name containing expression level categories

    Returns:
        go.Figure: Plotly bar chart figure object

    Note:
        The function assumes expr_df has already been processed to contain
        expression level categories. If not, use gene_expression_levels()
        from data.utils first.
    """
    if not color_discrete_sequence:
        color_discrete_sequence = ["red", "blue", "green"]
    expr_df = deepcopy(expr_df)
    expr_df.sort_values(gene_expr_col, inplace=True)

    fig = px.bar(
        expr_df,
        x=expr_df.index,
        y=gene_expr_col,
        color=gene_expr_level,
        title=title,
        text=gene_expr_col,
        color_discrete_sequence=color_discrete_sequence,
        category_orders={gene_expr_level: ["low", "mid", "high"]},
    )
    fig = fig.update_traces(texttemplate="%{text:.2s}", textposition="outside")
    fig = fig.update_layout(uniformtext_minsize=10, uniformtext_mode="hide")

    save_figure(fig, save_path)
    return fig
