import numpy as np
import pandas as pd
import pytest

from data.tidy import add_de_columns, counts_to_long, join_de_families, summarize_families
from data.utils import gene_expression_levels
from data.visualization import (
    counts_boxplot,
    expression_heatmap,
    family_barplot,
    gene_expression_plot,
    interactive_volcano,
    ma_plot,
    sample_pca_plot,
    save_figure,
    volcano_plot,
)


def test_volcano_plot(tmp_path, de_df):
    save_path = tmp_path.joinpath("plots", "volcano.html")

    fig = volcano_plot(de_df, save_path, lfc_th=1.0, label_top_n=3)

    assert save_path.exists()
    assert [a.text for a in fig.layout.annotations] == ["g2", "g1", "g7"]
    # g5 has no p-value
    n_points = sum(len(trace.x) for trace in fig.data)
    assert n_points == len(de_df) - 1


def test_volcano_plot_zero_p_value(tmp_path, de_df):
    de_df.loc["g2", "padj"] = 0.0

    fig = volcano_plot(de_df, tmp_path.joinpath("volcano.html"), label_top_n=1)

    down_trace = next(trace for trace in fig.data if trace.name == "down")
    assert "g2" in down_trace.hovertext
    # drawn at the highest finite -log10 p-value (g1, padj 0.001)
    assert max(down_trace.y) == pytest.approx(3.0)
    assert fig.layout.annotations[0].text == "g2"


def test_interactive_volcano_zero_p_value(tmp_path, de_df):
    de_df.loc["g2", "padj"] = 0.0

    fig = interactive_volcano(
        de_df, tmp_path.joinpath("volcano_interactive.html"), p_ths=(0.05,)
    )

    assert fig.layout.title.text.endswith("5 genes")
    assert sum(len(trace.x) for trace in fig.data) == len(de_df) - 1


def test_volcano_plot_lfc_level(tmp_path, de_df):
    fig = volcano_plot(de_df, tmp_path.joinpath("volcano.html"), lfc_level="down")

    assert {trace.name for trace in fig.data} == {"down", "ns"}

    fig = ma_plot(de_df, tmp_path.joinpath("ma.html"), lfc_level="down")

    assert {trace.name for trace in fig.data} == {"down", "ns"}


def test_ma_plot(tmp_path, de_df):
    save_path = tmp_path.joinpath("ma.html")

    fig = ma_plot(de_df, save_path)

    assert save_path.exists()
    assert {trace.name for trace in fig.data} == {"up", "down", "ns"}


def test_interactive_volcano(tmp_path, de_df):
    save_path = tmp_path.joinpath("volcano_interactive.html")
    p_ths = (0.05, 0.01, 0.1)

    fig = interactive_volcano(de_df, save_path, p_ths=p_ths)

    assert save_path.exists()
    assert len(fig.data) == 3 * len(p_ths)
    steps = fig.layout.sliders[0].steps
    assert [step.label for step in steps] == ["0.1", "0.05", "0.01"]
    assert [trace.visible for trace in fig.data[:4]] == [True, True, True, False]
    # number of significant genes shown for each threshold
    assert steps[1].args[1]["title"].endswith("5 genes")
    assert steps[2].args[1]["title"].endswith("2 genes")


def test_interactive_volcano_requires_html(tmp_path, de_df):
    with pytest.raises(AssertionError):
        interactive_volcano(de_df, tmp_path.joinpath("volcano.pdf"))


def test_save_figure_unknown_format(tmp_path, de_df):
    fig = ma_plot(de_df, tmp_path.joinpath("ma.html"))

    with pytest.raises(ValueError):
        save_figure(fig, tmp_path.joinpath("ma.jpeg"))


def test_family_barplot(tmp_path, de_df, families_df):
    summary_df = summarize_families(
        join_de_families(add_de_columns(de_df), families_df)
    )
    save_path = tmp_path.joinpath("families.html")

    fig = family_barplot(summary_df, save_path, top_n=2)

    assert save_path.exists()
    assert set(fig.data[0].x) == {"MYB", "WRKY"}


def test_counts_boxplot(tmp_path, counts_df, annot_df):
    save_path = tmp_path.joinpath("boxplot.html")

    fig = counts_boxplot(counts_to_long(counts_df, annot_df), save_path)

    assert save_path.exists()
    assert {trace.name for trace in fig.data} == {"control", "treated"}


def test_sample_pca_plot(tmp_path, counts_df, annot_df):
    save_path = tmp_path.joinpath("pca.html")

    fig = sample_pca_plot(
        counts_df,
        annot_df,
        save_path,
        sample_colors={"control": "#4A708B", "treated": "#8B3A3A"},
    )

    assert save_path.exists()
    assert sum(len(trace.x) for trace in fig.data) == counts_df.shape[1]


def test_sample_pca_plot_single_sample(tmp_path, counts_df, annot_df):
    with pytest.raises(AssertionError):
        sample_pca_plot(
            counts_df[["control_1"]], annot_df, tmp_path.joinpath("pca.html")
        )


def test_expression_heatmap(tmp_path, counts_df, annot_df):
    save_path = tmp_path.joinpath("heatmap.png")

    g = expression_heatmap(
        counts_df, annot_df, save_path, genes=["g1", "g2", "g3", "g99"]
    )

    assert save_path.exists()
    assert g.data2d.shape == (3, counts_df.shape[1])


def test_sample_pca_plot_and_heatmap_missing_count(tmp_path, counts_df, annot_df):
    counts_df = counts_df.astype(float)
    counts_df.loc["g5", "control_2"] = np.nan

    sample_pca_plot(counts_df, annot_df, tmp_path.joinpath("pca.html"))
    g = expression_heatmap(
        counts_df, annot_df, tmp_path.joinpath("heatmap.png"), genes=["g1", "g2", "g5"]
    )

    assert "g5" not in g.data2d.index


def test_expression_heatmap_not_enough_genes(tmp_path, counts_df, annot_df):
    with pytest.raises(AssertionError):
        expression_heatmap(
            counts_df, annot_df, tmp_path.joinpath("heatmap.png"), genes=["g1"]
        )


def test_gene_expression_plot(tmp_path):
    expr_df = gene_expression_levels(
        pd.DataFrame(
            {"gene_expr": [1.0, 5.0, 2.5, 10.0]},
            index=["s1", "s2", "s3", "s4"],
        ),
        gene_expr_col="gene_expr",
        gene_expr_level="gene_expr_level",
        percentile=25,
    )
    save_path = tmp_path.joinpath("expression.html")

    fig = gene_expression_plot(expr_df, save_path, title="g1")

    assert save_path.exists()
    assert [trace.name for trace in fig.data] == ["low", "mid", "high"]
