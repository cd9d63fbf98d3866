"""
Utilities for the exploratory analysis of differential expression results, RNA-seq
counts and transcription factor families.

This module chains the tidy verbs of ``data.tidy`` into the three parts of the
analysis:

1. Differential expression results: significance annotation, filtering of
   differentially expressed genes (DEGs), top genes, volcano and MA plots, and an
   interactive volcano plot with a significance threshold slider.

2. Counts: long format, per sample and per condition summaries, normalization,
   count distributions, sample PCA and a heatmap of DEGs (or most variable genes).

3. TF families: join of DE results and family membership, per family summaries and
   over-representation of families among DEGs (Fisher's exact or chi-square test).

All results are written as CSV files under ``results_path`` and plots under
``plots_path``, named after ``exp_prefix`` and the threshold combination.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from components.np_encoder import NpEncoder
from components.tf_enrichment.base import FamilyEnrichment
from components.thresholds import DEThresholds
from data.io import save_table
from data.tidy import (
    add_de_columns,
    counts_to_long,
    filter_de_results,
    join_de_families,
    long_to_wide,
    normalize_counts,
    summarize_counts,
    summarize_families,
    summarize_samples,
    top_genes,
)
from data.utils import filter_df, gene_expression_levels
from data.visualization import (
    counts_boxplot,
    expression_heatmap,
    family_barplot,
    gene_expression_plot,
    interactive_volcano,
    ma_plot,
    sample_pca_plot,
    volcano_plot,
)

logger = logging.getLogger(__name__)


def explore_de_results(
    de_df: pd.DataFrame,
    results_path: Path,
    plots_path: Path,
    exp_prefix: str,
    thresholds: DEThresholds,
    top_n: int = 20,
    interactive_p_ths: Iterable[float] = (0.1, 0.05, 0.01, 0.001),
    plots_format: str = "pdf",
) -> pd.DataFrame:
    """
    Annotate, filter and plot differential expression results.

    Args:
        de_df: Differential expression results indexed by gene ID.
        results_path: Directory where tables are stored.
        plots_path: Directory where plots are stored.
        exp_prefix: Prefix of all output file names.
        thresholds: Thresholds used to call DEGs.
        top_n: Number of top genes saved and labelled in the volcano plot.
        interactive_p_ths: Thresholds offered in the interactive volcano plot.
        plots_format: Extension of static plots.

    Returns:
        pd.DataFrame: Filtered DEGs.
    """
    results_path.mkdir(exist_ok=True, parents=True)
    plots_path.mkdir(exist_ok=True, parents=True)
    th_key = thresholds.key

    # 1. Annotate all genes with significance columns and expression tiers
    de_ann_df = add_de_columns(de_df, **thresholds.as_dict())
    de_ann_df = gene_expression_levels(
        de_ann_df, gene_expr_col="baseMean", gene_expr_level="baseMean_level"
    )
    save_table(de_ann_df, results_path.joinpath(f"{exp_prefix}_de_{th_key}_ann.csv"))

    # 2. Filtered DEGs and top genes
    degs_df = filter_de_results(de_ann_df, **thresholds.as_dict())
    save_table(degs_df, results_path.joinpath(f"{exp_prefix}_degs_{th_key}.csv"))
    save_table(
        top_genes(degs_df, n=top_n, by=thresholds.p_col),
        results_path.joinpath(f"{exp_prefix}_degs_{th_key}_top_{top_n}.csv"),
    )
    logger.info(f"[{exp_prefix}] {len(degs_df)} DEGs found with {th_key}")

    # 3. Plots
    volcano_plot(
        de_df,
        plots_path.joinpath(f"{exp_prefix}_volcano_{th_key}.{plots_format}"),
        p_col=thresholds.p_col,
        p_th=thresholds.p_th,
        lfc_th=thresholds.lfc_th,
        lfc_level=thresholds.lfc_level,
        label_top_n=top_n,
        title=f"{exp_prefix} ({th_key})",
    )
    ma_plot(
        de_df,
        plots_path.joinpath(f"{exp_prefix}_ma_{th_key}.{plots_format}"),
        p_col=thresholds.p_col,
        p_th=thresholds.p_th,
        lfc_th=thresholds.lfc_th,
        lfc_level=thresholds.lfc_level,
        title=f"{exp_prefix} ({th_key})",
    )
    interactive_volcano(
        de_df,
        plots_path.joinpath(f"{exp_prefix}_volcano_interactive_{th_key}.html"),
        p_col=thresholds.p_col,
        p_ths=interactive_p_ths,
        lfc_th=thresholds.lfc_th,
        lfc_level=thresholds.lfc_level,
        title=exp_prefix,
    )

    return degs_df


def explore_counts(
    counts_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    results_path: Path,
    plots_path: Path,
    exp_prefix: str,
    de_genes: Optional[Iterable[str]] = None,
    conditions: Optional[Iterable[str]] = None,
    genes_of_interest: Iterable[str] = (),
    heatmap_top_n: int = 50,
    sample_colors: Optional[Dict[str, str]] = None,
    plots_format: str = "pdf",
) -> Dict[str, pd.DataFrame]:
    """
    Reshape, summarize and plot raw counts.

    Args:
        counts_df: Raw counts, genes as rows and samples as columns.
        annot_df: Sample annotation indexed by sample with a "condition" column.
        results_path: Directory where tables are stored.
        plots_path: Directory where plots are stored.
        exp_prefix: Prefix of all output file names.
        de_genes: Genes shown in the heatmap. If None or empty, the most variable
            genes are used.
        conditions: Conditions to keep. If None, all samples are used.
        genes_of_interest: Genes whose expression across samples is plotted.
        heatmap_top_n: Maximum number of genes in the heatmap.
        sample_colors: Mapping of conditions to colors.
        plots_format: Extension of static plots.

    Returns:
        Dict[str, pd.DataFrame]: Long counts, sample summary, per condition summary
            and log2 CPM matrix.
    """
    results_path.mkdir(exist_ok=True, parents=True)
    plots_path.mkdir(exist_ok=True, parents=True)

    # 0. Keep only annotated samples of the selected conditions
    if conditions is not None:
        annot_df = filter_df(annot_df, {"condition": list(conditions)})
    common_samples = annot_df.index.intersection(counts_df.columns)
    assert len(common_samples) > 0, "No sample in counts matrix is annotated."
    if len(common_samples) < counts_df.shape[1]:
        logging.warning(
            f"[{exp_prefix}] {counts_df.shape[1] - len(common_samples)} samples"
            " without annotation or of unselected conditions are ignored."
        )
    counts_df = counts_df.loc[:, common_samples]
    annot_df = annot_df.loc[common_samples, :]

    # 1. Reshaping and summaries
    counts_long_df = counts_to_long(counts_df, annot_df)
    samples_summary_df = summarize_samples(counts_long_df)
    condition_summary_df = summarize_counts(counts_long_df, by=("gene_id", "condition"))
    log_cpm_df = normalize_counts(counts_df, log=True)
    condition_log_cpm_df = long_to_wide(
        counts_to_long(log_cpm_df, annot_df), columns="condition"
    )

    save_table(
        counts_long_df,
        results_path.joinpath(f"{exp_prefix}_counts_long.csv"),
        index=False,
    )
    save_table(
        samples_summary_df,
        results_path.joinpath(f"{exp_prefix}_samples_summary.csv"),
        index=False,
    )
    save_table(
        condition_summary_df,
        results_path.joinpath(f"{exp_prefix}_condition_summary.csv"),
        index=False,
    )
    save_table(log_cpm_df, results_path.joinpath(f"{exp_prefix}_log2_cpm.csv"))
    save_table(
        condition_log_cpm_df,
        results_path.joinpath(f"{exp_prefix}_log2_cpm_condition_mean.csv"),
    )

    # 2. Plots
    counts_boxplot(
        counts_long_df,
        plots_path.joinpath(f"{exp_prefix}_counts_boxplot.{plots_format}"),
        title=f"{exp_prefix} counts distribution",
    )
    try:
        sample_pca_plot(
            counts_df,
            annot_df,
            plots_path.joinpath(f"{exp_prefix}_samples_pca.{plots_format}"),
            sample_colors=sample_colors,
            title=f"{exp_prefix} samples (log2 CPM)",
        )
    except AssertionError as e:
        logging.warning(f"[{exp_prefix}] Could not plot PCA: {e}")

    de_genes = list(de_genes) if de_genes is not None else []
    try:
        expression_heatmap(
            counts_df,
            annot_df,
            # clustered heatmaps are static, html is not available
            plots_path.joinpath(
                f"{exp_prefix}_heatmap.{'png' if plots_format == 'html' else plots_format}"
            ),
            genes=de_genes or None,
            top_n=heatmap_top_n,
            sample_colors=sample_colors,
        )
    except AssertionError as e:
        logging.warning(f"[{exp_prefix}] Could not plot heatmap: {e}")

    # 3. Expression of genes of interest across samples
    for gene_id in genes_of_interest:
        if gene_id not in log_cpm_df.index:
            logging.warning(f"[{exp_prefix}] Gene {gene_id} not found in counts.")
            continue
        expr_df = gene_expression_levels(
            log_cpm_df.loc[gene_id].rename("gene_expr").to_frame(),
            gene_expr_col="gene_expr",
            gene_expr_level="gene_expr_level",
        )
        gene_expression_plot(
            expr_df,
            plots_path.joinpath(
                f"{exp_prefix}_{gene_id}_expression.{plots_format}"
            ),
            title=f"{gene_id} expression (log2 CPM)",
        )

    return {
        "counts_long": counts_long_df,
        "samples_summary": samples_summary_df,
        "condition_summary": condition_summary_df,
        "log2_cpm": log_cpm_df,
    }


def tf_family_enrichment(
    de_df: pd.DataFrame,
    families_df: pd.DataFrame,
    results_path: Path,
    plots_path: Path,
    exp_prefix: str,
    thresholds: DEThresholds,
    method: str = "fisher",
    alternative: str = "greater",
    min_family_size: int = 1,
    top_n: int = 20,
    plots_format: str = "pdf",
) -> FamilyEnrichment:
    """
    Join DE results with TF families, summarize them and test families for
    over-representation among DEGs.

    Returns:
        FamilyEnrichment: Enrichment analysis object with saved results and plots.
    """
    results_path.mkdir(exist_ok=True, parents=True)
    plots_path.mkdir(exist_ok=True, parents=True)
    th_key = thresholds.key

    # 1. Join and summarize
    de_families_df = join_de_families(
        add_de_columns(de_df, **thresholds.as_dict()), families_df
    )
    families_summary_df = summarize_families(de_families_df)

    save_table(
        de_families_df,
        results_path.joinpath(f"{exp_prefix}_de_tf_families_{th_key}.csv"),
        index=False,
    )
    save_table(
        families_summary_df,
        results_path.joinpath(f"{exp_prefix}_tf_families_summary_{th_key}.csv"),
        index=False,
    )

    if families_summary_df.empty:
        logging.warning(f"[{exp_prefix}] No differentially tested gene is a TF.")
    else:
        family_barplot(
            families_summary_df,
            plots_path.joinpath(
                f"{exp_prefix}_tf_families_degs_{th_key}.{plots_format}"
            ),
            top_n=top_n,
            title=f"{exp_prefix} DEGs per TF family ({th_key})",
        )

    # 2. Over-representation of TF families among DEGs
    enrichment = FamilyEnrichment(
        de_df=de_df,
        families_df=families_df,
        thresholds=thresholds,
        method=method,
        alternative=alternative,
        min_family_size=min_family_size,
        files_prefix=results_path.joinpath(
            f"{exp_prefix}_tf_families_{method}_{th_key}"
        ),
        plots_prefix=plots_path.joinpath(f"{exp_prefix}_tf_families_{method}_{th_key}"),
        plots_format=plots_format,
    )
    enrichment.save_all()
    enrichment.plot_all(top_n=top_n)

    return enrichment


def exploratory_analysis(
    de_df: pd.DataFrame,
    counts_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    families_df: pd.DataFrame,
    root_path: Path,
    exp_prefix: str,
    p_col: str = "padj",
    p_th: float = 0.05,
    lfc_level: str = "all",
    lfc_th: float = 0.0,
    method: str = "fisher",
    alternative: str = "greater",
    min_family_size: int = 1,
    top_n: int = 20,
    heatmap_top_n: int = 50,
    conditions: Optional[Iterable[str]] = None,
    genes_of_interest: Iterable[str] = (),
    sample_colors: Optional[Dict[str, str]] = None,
    plots_format: str = "pdf",
) -> Dict[str, Any]:
    """
    Run the complete exploratory analysis for one threshold combination.

    Tables are written to ``root_path/results`` and plots to ``root_path/plots``.
    A JSON summary with the number of DEGs and the global TF enrichment test is
    written to ``root_path/results``.

    Returns:
        Dict[str, Any]: Summary of the analysis.
    """
    # 0. Setup
    thresholds = DEThresholds(
        p_col=p_col, p_th=p_th, lfc_level=lfc_level, lfc_th=lfc_th
    )
    results_path = root_path.joinpath("results")
    plots_path = root_path.joinpath("plots")

    # 1. Differential expression results
    degs_df = explore_de_results(
        de_df,
        results_path=results_path,
        plots_path=plots_path,
        exp_prefix=exp_prefix,
        thresholds=thresholds,
        top_n=top_n,
        plots_format=plots_format,
    )

    # 2. Counts, heatmap restricted to DEGs
    explore_counts(
        counts_df,
        annot_df,
        results_path=results_path.joinpath(thresholds.key),
        plots_path=plots_path.joinpath(thresholds.key),
        exp_prefix=exp_prefix,
        de_genes=degs_df.index,
        conditions=conditions,
        genes_of_interest=genes_of_interest,
        heatmap_top_n=heatmap_top_n,
        sample_colors=sample_colors,
        plots_format=plots_format,
    )

    # 3. TF families
    enrichment = tf_family_enrichment(
        de_df,
        families_df,
        results_path=results_path,
        plots_path=plots_path,
        exp_prefix=exp_prefix,
        thresholds=thresholds,
        method=method,
        alternative=alternative,
        min_family_size=min_family_size,
        top_n=top_n,
        plots_format=plots_format,
    )

    # 4. Summary
    summary = {
        "exp_prefix": exp_prefix,
        "thresholds": thresholds.as_dict(),
        "n_genes": len(de_df),
        "n_tested": len(enrichment.universe),
        "n_degs": len(degs_df),
        "n_degs_up": int((degs_df["log2FoldChange"] > 0).sum()),
        "n_degs_down": int((degs_df["log2FoldChange"] < 0).sum()),
        "n_samples": counts_df.shape[1],
        "n_families_tested": len(enrichment.result_df),
        "n_families_significant": len(enrichment.significant()),
        "tf_enrichment": enrichment.global_result,
    }
    with results_path.joinpath(f"{exp_prefix}_summary_{thresholds.key}.json").open(
        "w"
    ) as fp:
        json.dump(summary, fp, cls=NpEncoder, indent=True)

    return summary
